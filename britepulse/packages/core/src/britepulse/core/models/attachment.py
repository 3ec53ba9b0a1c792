"""Attachment Domain Model

附件文件落盘在 attachments_dir/app_id/attachment_id，元数据存 SQLite。
sha256 和 size_bytes 用于完整性校验。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import Environment


class AttachmentUpload(BaseModel):
    """随事件上传的附件（base64 编码）

    只有用户明确同意（user_opted_in=true）的附件才会被保存。
    """

    filename: str = Field(min_length=1, description="文件名")
    content_type: str = Field(min_length=1, description="MIME 类型")
    data: str = Field(min_length=1, description="base64 编码内容")
    user_opted_in: bool = Field(default=False, description="用户同意上传")


class Attachment(BaseModel):
    """Attachment 元数据"""

    attachment_id: str = Field(description="唯一标识，ULID 格式")
    event_id: str = Field(description="关联的 Event ID")
    app_id: str = Field(description="所属应用")
    environment: Environment = Field(description="部署环境")
    filename: str = Field(description="文件名")
    content_type: str = Field(description="MIME 类型")
    size_bytes: int = Field(gt=0, description="内容大小（字节）")
    storage_path: str = Field(description="存储路径")
    sha256: str = Field(description="SHA-256 哈希")
    uploaded_at: datetime = Field(description="上传时间")
    expires_at: datetime = Field(description="过期时间")
    user_opted_in: bool = Field(default=True, description="用户同意上传")

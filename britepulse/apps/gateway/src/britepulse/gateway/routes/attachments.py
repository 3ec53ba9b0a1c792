"""附件路由

GET /api/attachments/{attachment_id}          元数据（不含 storage_path）
GET /api/attachments/{attachment_id}/content  原始内容
"""

from fastapi import APIRouter, Depends
from starlette.responses import Response

from ..deps import get_store_group
from ..errors import error_response

router = APIRouter()


def _not_found(attachment_id: str):
    return error_response(
        404, "ATTACHMENT_NOT_FOUND", f"Attachment with id {attachment_id} does not exist"
    )


@router.get("/api/attachments/{attachment_id}")
async def get_attachment(attachment_id: str, store_group=Depends(get_store_group)):
    attachment = await store_group.attachment_store.get_attachment(attachment_id)
    if attachment is None:
        return _not_found(attachment_id)
    return {
        **attachment.model_dump(mode="json", exclude={"storage_path"}),
        "content_url": f"/api/attachments/{attachment_id}/content",
    }


@router.get("/api/attachments/{attachment_id}/content")
async def get_attachment_content(attachment_id: str, store_group=Depends(get_store_group)):
    """元数据存在但文件已丢失时同样返回 404"""
    attachment = await store_group.attachment_store.get_attachment(attachment_id)
    content = await store_group.attachment_store.get_attachment_content(attachment_id)
    if attachment is None or content is None:
        return _not_found(attachment_id)
    return Response(
        content=content,
        media_type=attachment.content_type,
        headers={"Content-Disposition": f'inline; filename="{attachment.filename}"'},
    )

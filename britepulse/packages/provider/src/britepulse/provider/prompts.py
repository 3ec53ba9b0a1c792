"""Triage 提示词与用户消息构造"""

from .models import TriageInput

TRIAGE_SYSTEM_PROMPT = """You are an expert software engineer and technical support analyst helping triage bug reports and user feedback for an internal web application.

Analyze the issue using only the evidence provided (error logs, stack traces, user feedback, metrics).
Classify it, assess severity by impact (P0=critical, P1=high, P2=medium, P3=low), identify the most likely root cause, and propose fixes, tests, rollout and rollback.

RULES:
- Every claim must reference specific evidence in evidence_refs
- If evidence is insufficient, set confidence <= 0.5, list additional_info_needed and choose request_info or route_engineering
- State assumptions explicitly
- Never include secrets, PII or credentials in the response
- Reserve P0/P1 for truly critical issues
- Prefer the simplest fix when several options exist

Respond with a single JSON object:
{
  "classification": "bug" | "feature" | "feedback" | "question",
  "severity": "P0" | "P1" | "P2" | "P3",
  "severity_rationale": "string",
  "impact_summary": "1-2 sentences",
  "evidence_refs": [{"type": "event" | "stack_trace" | "code_excerpt" | "metric" | "feedback", "ref_id": "optional", "excerpt": "snippet", "relevance": "why it matters"}],
  "root_cause_hypothesis": "string",
  "fix_plan": [{"option_number": 1, "description": "string", "files_likely_touched": ["path"], "complexity": "low" | "medium" | "high", "confidence": 0.0}],
  "test_plan": [{"test_type": "unit" | "integration" | "e2e" | "manual", "description": "string", "priority": "required" | "recommended" | "optional"}],
  "rollout_plan": "string",
  "rollback_plan": "string",
  "confidence": 0.0,
  "assumptions": ["string"],
  "limitations": ["string"],
  "next_action": "investigate" | "request_info" | "route_engineering" | "create_ticket" | "monitor_only",
  "next_action_rationale": "string",
  "additional_info_needed": ["string"]
}"""


def build_triage_user_message(triage_input: TriageInput) -> str:
    """把证据包渲染为 Markdown 用户消息"""
    parts: list[str] = [
        "## Issue Information",
        f"**Title:** {triage_input.issue_title}",
        f"**Description:** {triage_input.issue_description}",
        f"**Type:** {triage_input.issue_type}",
        f"**Current Severity:** {triage_input.current_severity}",
        f"**App:** {triage_input.app_name} ({triage_input.environment})",
        "",
        "## Metrics",
        f"- Total occurrences: {triage_input.occurrences_total}",
        f"- Last 24h occurrences: {triage_input.occurrences_24h}",
        f"- Unique users (24h est): {triage_input.unique_users_24h_est}",
        f"- Trend: {triage_input.trend_direction}",
        "",
    ]

    if triage_input.affected_routes:
        parts.append("## Affected Routes")
        parts.extend(f"- {route}" for route in triage_input.affected_routes)
        parts.append("")

    if triage_input.affected_versions:
        parts.append("## Affected Versions")
        parts.extend(f"- {version}" for version in triage_input.affected_versions)
        parts.append("")

    for i, feedback in enumerate(triage_input.sanitized_feedback, start=1):
        if i == 1:
            parts.append("## User Feedback")
        parts.extend([f"### Feedback {i}", feedback, ""])

    for i, stack in enumerate(triage_input.sanitized_stack_traces, start=1):
        if i == 1:
            parts.append("## Stack Traces")
        parts.extend([f"### Stack Trace {i}", "```", stack, "```", ""])

    parts.append("Please analyze this issue and provide your triage assessment in JSON format.")
    return "\n".join(parts)

"""Lifecycle hooks for queue task execution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.core.logging import LogContext, build_log_event


def before_task(task_key: str, run_id: str, **fields: Any) -> dict[str, Any]:
    """Build pre-task log payload."""
    return build_log_event("task.start", LogContext(run_id=run_id), task=task_key, **fields)


def after_task(task_key: str, run_id: str, status: str, **fields: Any) -> dict[str, Any]:
    """Build post-task log payload."""
    return build_log_event(
        "task.finish",
        LogContext(run_id=run_id),
        task=task_key,
        status=status,
        finished_at=datetime.now(timezone.utc).isoformat(),
        **fields,
    )

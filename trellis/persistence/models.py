"""Stored record shapes and key layout."""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..constants import JOB_KEY_PREFIX, WORKFLOW_KEY_PREFIX

RESERVATION = json.dumps({"reserved": True})


class WorkflowRecord(BaseModel):
    """Workflow-level record stored under ``workflow:<id>``."""

    id: Optional[str] = None
    klass: str
    arguments: list[Any] = Field(default_factory=list)
    created_at: int
    stopped: bool = False


def workflow_key(workflow_id: str) -> str:
    return f"{WORKFLOW_KEY_PREFIX}:{workflow_id}"


def job_key(workflow_id: str, job_name: str) -> str:
    return f"{JOB_KEY_PREFIX}:{workflow_id}:{job_name}"


def workflow_pattern() -> str:
    return f"{WORKFLOW_KEY_PREFIX}:*"


def job_pattern(workflow_id: str, prefix: str = "") -> str:
    return f"{JOB_KEY_PREFIX}:{workflow_id}:{prefix}*"


def decode(raw: Optional[str]) -> Optional[dict[str, Any]]:
    """Parse a stored value, treating identifier reservations as absent."""
    if raw is None:
        return None
    data = json.loads(raw)
    if data.get("reserved"):
        return None
    return data

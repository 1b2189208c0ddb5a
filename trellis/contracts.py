"""Messages exchanged with the work queue."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field


class JobMessage(BaseModel):
    """Request for a worker to execute one job of one workflow.

    Carries identifiers only. The worker reads the job's state from the
    store, so a message never needs to be updated after it is sent.
    """

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: Literal["job-execute"] = "job-execute"
    workflow_id: str
    job_name: str
    queue: str
    retry: bool = False
    attempt: int = 1
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        """Serialize message to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "JobMessage":
        """Deserialize message from JSON."""
        return cls.model_validate_json(data)

"""Job model and its timestamp-driven state machine."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from . import errors

if TYPE_CHECKING:
    from .repository import Repository


def current_timestamp() -> int:
    """Return the current time as integer epoch seconds."""
    return int(time.time())


class Job(BaseModel):
    """A single node of a workflow graph.

    State is never stored explicitly; it is derived from which of the four
    timestamps are set. A job that has none of them set is pending.

    Subclasses implement ``perform`` and may set ``queue_options`` to route
    the job to a dedicated queue or to allow the worker to retry it.
    """

    Error: ClassVar[type] = errors.JobError
    SoftFail: ClassVar[type] = errors.SoftFail
    LoopFail: ClassVar[type] = errors.LoopFail

    default_queue_options: ClassVar[Dict[str, Any]] = {"retry": False}
    queue_options: ClassVar[Dict[str, Any]] = {}

    name: str
    incoming: List[str] = Field(default_factory=list)
    outgoing: List[str] = Field(default_factory=list)
    params: Dict[str, Any] = Field(default_factory=dict)
    workflow_id: Optional[str] = None
    enqueued_at: Optional[int] = None
    started_at: Optional[int] = None
    finished_at: Optional[int] = None
    failed_at: Optional[int] = None
    soft_fail: Optional[bool] = None
    output_payload: Any = None
    payloads: List[Dict[str, Any]] = Field(default_factory=list, exclude=True)

    @model_validator(mode="after")
    def _check_timestamps(self) -> "Job":
        if self.failed_at is not None and self.finished_at is None:
            raise ValueError(f"Job {self.name} has failed_at without finished_at")
        if self.soft_fail and self.failed_at is None:
            raise ValueError(f"Job {self.name} has soft_fail without failed_at")
        return self

    @classmethod
    def type_name(cls) -> str:
        """Name under which this job type is registered and serialized."""
        return cls.__name__

    @computed_field  # type: ignore[prop-decorator]
    @property
    def klass(self) -> str:
        return type(self).type_name()

    @classmethod
    def full_queue_options(cls) -> Dict[str, Any]:
        return {**cls.default_queue_options, **cls.queue_options}

    # ------------------------------------------------------------------
    # Business logic
    async def perform(self) -> None:
        """Run the job. Override in subclasses."""

    def output(self, data: Any) -> None:
        """Record the result of ``perform``."""
        self.output_payload = data

    # ------------------------------------------------------------------
    # Transitions
    def enqueue(self) -> None:
        """Mark as enqueued; every later timestamp is reset."""
        self.enqueued_at = current_timestamp()
        self.started_at = None
        self.finished_at = None
        self.failed_at = None
        self.soft_fail = None

    def start(self) -> None:
        self.started_at = current_timestamp()

    def finish(self) -> None:
        self.finished_at = current_timestamp()

    def fail(self, soft: bool = False) -> None:
        now = current_timestamp()
        self.finished_at = now
        self.failed_at = now
        self.soft_fail = soft

    def clear(self) -> None:
        """Return to pending without enqueuing."""
        self.enqueued_at = None
        self.started_at = None
        self.finished_at = None
        self.failed_at = None
        self.soft_fail = None

    # ------------------------------------------------------------------
    # Predicates
    @property
    def enqueued(self) -> bool:
        return self.enqueued_at is not None

    @property
    def started(self) -> bool:
        return self.started_at is not None

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    @property
    def failed(self) -> bool:
        return self.failed_at is not None

    @property
    def failed_softly(self) -> bool:
        return self.failed and bool(self.soft_fail)

    @property
    def succeeded(self) -> bool:
        return self.finished and not self.failed

    @property
    def running(self) -> bool:
        return self.started and not self.finished

    @property
    def has_no_dependencies(self) -> bool:
        return not self.incoming

    @property
    def loop_opts(self) -> Optional[Dict[str, Any]]:
        return self.params.get("loop_opts")

    @property
    def expired(self) -> bool:
        """True once ``loop_opts.end_time`` has passed."""
        loop_opts = self.loop_opts
        if not loop_opts or loop_opts.get("end_time") is None:
            return False
        return time.time() > loop_opts["end_time"]

    @property
    def no_retries(self) -> bool:
        return not self.full_queue_options().get("retry")

    async def ready_to_start(self, repository: "Repository") -> bool:
        """Check whether this job may be enqueued now.

        Dependencies are read from the store on every call; nothing is
        locked, so the answer can be stale by the time the caller acts.
        """
        if self.running or self.enqueued or self.finished or self.failed:
            return False
        return await self.parents_succeeded(repository)

    async def parents_succeeded(self, repository: "Repository") -> bool:
        for name in self.incoming:
            parent = await repository.find_job(self.workflow_id, name)
            if parent is None or not parent.succeeded:
                return False
        return True

"""Workflow graph container and builder."""

from __future__ import annotations

import logging
import re
import uuid
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, Union

from .job import Job, current_timestamp
from .persistence.models import WorkflowRecord

logger = logging.getLogger(__name__)

JOB_NAME_PATTERN = re.compile(r"^(?P<klass>\w*[^-])-(?P<identifier>.*)$")

JobRef = Union[str, Type[Job]]


def _as_list(value: Union[JobRef, Iterable[JobRef], None]) -> List[JobRef]:
    if value is None:
        return []
    if isinstance(value, (str, type)):
        return [value]
    return list(value)


class Workflow:
    """A DAG of jobs plus graph-level metadata.

    Subclasses describe their graph in ``configure``::

        class Publish(Workflow):
            def configure(self, url):
                fetch = self.run(Fetch, params={"url": url})
                self.run(Persist, after=fetch)

    Dependency edges are always written to both ends by
    ``resolve_dependencies``. The container answers structural questions;
    it never decides what to enqueue.
    """

    def __init__(self, *arguments: Any) -> None:
        self._id: Optional[str] = None
        self._created_at = current_timestamp()
        self.arguments: List[Any] = list(arguments)
        self.jobs: Dict[str, Job] = {}
        self.stopped = False
        self.persisted = False
        self._dependencies: List[Tuple[JobRef, JobRef]] = []

        self.configure(*arguments)
        self.resolve_dependencies()

    @classmethod
    def type_name(cls) -> str:
        return cls.__name__

    @classmethod
    def from_record(cls, record: WorkflowRecord, jobs: Iterable[Job]) -> "Workflow":
        """Rebuild a workflow from its stored record and stored jobs."""
        flow = cls(*record.arguments)
        flow.jobs = {job.name: job for job in jobs}
        flow.id = record.id
        flow._created_at = record.created_at
        flow.stopped = record.stopped
        flow.persisted = True
        return flow

    @property
    def id(self) -> Optional[str]:
        return self._id

    @id.setter
    def id(self, value: Optional[str]) -> None:
        self._id = value
        for job in self.jobs.values():
            job.workflow_id = value

    @property
    def created_at(self) -> int:
        return self._created_at

    @property
    def klass(self) -> str:
        return type(self).type_name()

    # ------------------------------------------------------------------
    # Graph building
    def configure(self, *arguments: Any) -> None:
        """Declare jobs and their dependencies. Override in subclasses."""

    def run(
        self,
        job_cls: Type[Job],
        params: Optional[Dict[str, Any]] = None,
        after: Union[JobRef, Iterable[JobRef], None] = None,
        before: Union[JobRef, Iterable[JobRef], None] = None,
    ) -> str:
        """Add a job of type ``job_cls`` and return its generated name."""
        name = self._next_job_name(job_cls)
        self.jobs[name] = job_cls(name=name, params=params or {}, workflow_id=self.id)

        for upstream in _as_list(after):
            self._dependencies.append((upstream, name))
        for downstream in _as_list(before):
            self._dependencies.append((name, downstream))
        return name

    def resolve_dependencies(self) -> None:
        for upstream, downstream in self._dependencies:
            for source in self._resolve_ref(upstream):
                for target in self._resolve_ref(downstream):
                    if target.name not in source.outgoing:
                        source.outgoing.append(target.name)
                    if source.name not in target.incoming:
                        target.incoming.append(source.name)
        self._dependencies = []

    def _resolve_ref(self, ref: JobRef) -> List[Job]:
        if isinstance(ref, type):
            matches = [j for j in self.jobs.values() if isinstance(j, ref)]
        else:
            job = self.find_job(ref)
            matches = [job] if job is not None else []
        if not matches:
            raise ValueError(f"Unknown dependency {ref!r} in {self.klass}")
        return matches

    def _next_job_name(self, job_cls: Type[Job]) -> str:
        while True:
            name = f"{job_cls.type_name()}-{uuid.uuid4()}"
            if name not in self.jobs:
                return name

    # ------------------------------------------------------------------
    # Queries
    def find_job(self, name: str) -> Optional[Job]:
        """Look up a job by full name, or by bare type name."""
        if JOB_NAME_PATTERN.match(name):
            return self.jobs.get(name)
        return next((j for j in self.jobs.values() if j.klass == name), None)

    @property
    def initial_jobs(self) -> List[Job]:
        return [job for job in self.jobs.values() if job.has_no_dependencies]

    def clear_job_children(self, job: Job) -> List[Job]:
        """Clear every job reachable from ``job`` through ``outgoing`` edges."""
        cleared: List[Job] = []
        seen = {job.name}
        pending = deque(job.outgoing)
        while pending:
            name = pending.popleft()
            if name in seen:
                continue
            seen.add(name)
            child = self.jobs.get(name)
            if child is None:
                logger.warning(f"Job {job.name} points at missing job {name}")
                continue
            child.clear()
            cleared.append(child)
            pending.extend(child.outgoing)
        return cleared

    def mark_as_started(self) -> None:
        self.stopped = False

    def mark_as_stopped(self) -> None:
        self.stopped = True

    def mark_as_persisted(self) -> None:
        self.persisted = True

    @property
    def finished(self) -> bool:
        return all(job.finished for job in self.jobs.values())

    @property
    def failed(self) -> bool:
        return any(job.failed for job in self.jobs.values())

    @property
    def started(self) -> bool:
        return any(job.started or job.enqueued for job in self.jobs.values())

    @property
    def running(self) -> bool:
        return self.started and not self.finished and not self.stopped

    @property
    def status(self) -> str:
        if self.failed:
            return "failed"
        if self.stopped:
            return "stopped"
        if self.jobs and self.finished:
            return "finished"
        if self.running:
            return "running"
        return "pending"

    def to_record(self) -> WorkflowRecord:
        return WorkflowRecord(
            id=self.id,
            klass=self.klass,
            arguments=self.arguments,
            created_at=self.created_at,
            stopped=self.stopped,
        )

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"<{self.klass} id={self.id} jobs={len(self.jobs)} status={self.status}>"

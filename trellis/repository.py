"""Persistence and scheduling client for workflows."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, List, Optional

from .config import TrellisConfig, load_config
from .constants import DEFAULT_TTL, RESERVATION_TTL
from .dispatch import JobDispatcher
from .errors import JobNotFound, WorkflowNotFound
from .job import Job
from .persistence import BaseStore, get_store
from .persistence.models import (
    RESERVATION,
    WorkflowRecord,
    decode,
    job_key,
    job_pattern,
    workflow_key,
    workflow_pattern,
)
from .registry import REGISTRY, TypeRegistry
from .transports import get_transport
from .workflow import JOB_NAME_PATTERN, Workflow

logger = logging.getLogger(__name__)


class Repository:
    """The only component that talks to the store and the queue.

    Every method re-reads what it needs from the store; no graph state is
    kept between calls.

    Multi-record operations (``persist_workflow``, ``destroy_workflow``,
    ``expire_workflow``) are sequences of single-key writes. A crash part
    way through leaves the workflow record and its job records out of
    step; nothing here repairs that.
    """

    def __init__(
        self,
        store: BaseStore,
        dispatcher: JobDispatcher,
        registry: TypeRegistry = REGISTRY,
        ttl: int = DEFAULT_TTL,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.registry = registry
        self.ttl = ttl

    # ------------------------------------------------------------------
    # Scheduling
    async def create_workflow(self, type_name: str, *arguments: Any) -> Workflow:
        """Build a workflow of a registered type. It is not persisted."""
        workflow_cls = self.registry.resolve_workflow(type_name)
        return workflow_cls(*arguments)

    async def start_workflow(
        self, workflow: Workflow, job_names: Optional[Iterable[str]] = None
    ) -> List[Job]:
        """Persist ``workflow`` and enqueue its initial jobs or ``job_names``."""
        workflow.mark_as_started()
        await self.persist_workflow(workflow)

        names = list(job_names or [])
        if names:
            jobs = [self._require_job(workflow, name) for name in names]
        else:
            jobs = workflow.initial_jobs
        if not jobs:
            logger.warning(f"Workflow {workflow.id} started with no jobs to enqueue")

        for job in jobs:
            await self.enqueue_job(workflow.id, job)
        logger.info(
            f"Started workflow {workflow.id} ({workflow.klass}) with "
            f"{[job.name for job in jobs]}"
        )
        return jobs

    async def stop_workflow(self, workflow_id: str) -> Workflow:
        """Flag the workflow as stopped. Dispatched jobs are not recalled."""
        workflow = await self.find_workflow(workflow_id)
        workflow.mark_as_stopped()
        await self.persist_workflow(workflow)
        logger.info(f"Stopped workflow {workflow_id}")
        return workflow

    async def enqueue_job(self, workflow_id: str, job: Job, attempt: int = 1) -> None:
        """Record ``job`` as enqueued, then hand it to the dispatcher.

        The record is written before the message is sent, so a worker can
        never receive a job whose enqueue was not stored.
        """
        job.enqueue()
        await self.persist_job(workflow_id, job)
        await self.dispatcher.dispatch(workflow_id, job, attempt=attempt)

    async def enqueue_outgoing_jobs(self, workflow_id: str, job: Job) -> List[Job]:
        """Enqueue every direct dependent of ``job`` that is now ready."""
        if await self._is_stopped(workflow_id):
            logger.info(f"Workflow {workflow_id} is stopped; not enqueueing after {job.name}")
            return []

        enqueued: List[Job] = []
        for name in job.outgoing:
            candidate = await self.find_job(workflow_id, name)
            if candidate is None:
                logger.warning(f"Outgoing job {name} of {job.name} not found in {workflow_id}")
                continue
            if await candidate.ready_to_start(self):
                await self.enqueue_job(workflow_id, candidate)
                enqueued.append(candidate)
        if enqueued:
            logger.info(
                f"Enqueued {[j.name for j in enqueued]} after {job.name} in {workflow_id}"
            )
        return enqueued

    async def restart_workflow(self, workflow_id: str, job_name: str) -> Job:
        """Re-run ``job_name`` and everything downstream of it."""
        workflow = await self.find_workflow(workflow_id)
        workflow.mark_as_started()
        initial_job = self._require_job(workflow, job_name)
        initial_job.enqueue()
        cleared = workflow.clear_job_children(initial_job)
        await self.persist_workflow(workflow)
        await self.dispatcher.dispatch(workflow_id, initial_job)
        logger.info(
            f"Restarted workflow {workflow_id} from {initial_job.name}, "
            f"cleared {len(cleared)} downstream jobs"
        )
        return initial_job

    @staticmethod
    def _require_job(workflow: Workflow, name: str) -> Job:
        job = workflow.find_job(name)
        if job is None:
            raise JobNotFound(f"Job {name!r} not found in workflow {workflow.id}")
        return job

    # ------------------------------------------------------------------
    # Identifier allocation
    async def next_free_workflow_id(self) -> str:
        """Reserve and return an unused workflow id.

        The reservation is a conditional write, so two callers can never be
        handed the same id.
        """
        while True:
            workflow_id = str(uuid.uuid4())
            if await self.store.set_if_absent(
                workflow_key(workflow_id), RESERVATION, ttl=RESERVATION_TTL
            ):
                return workflow_id

    async def next_free_job_id(self, workflow_id: str, job_type: str) -> str:
        """Reserve and return an unused ``<job_type>-<uuid>`` job name.

        For jobs added to a workflow after it was persisted; the graph
        builder names the jobs of a new workflow itself.
        """
        while True:
            name = f"{job_type}-{uuid.uuid4()}"
            if await self.store.set_if_absent(
                job_key(workflow_id, name), RESERVATION, ttl=RESERVATION_TTL
            ):
                return name

    # ------------------------------------------------------------------
    # Persistence
    async def persist_workflow(self, workflow: Workflow) -> bool:
        if workflow.id is None:
            workflow.id = await self.next_free_workflow_id()

        await self.store.set(workflow_key(workflow.id), workflow.to_record().model_dump_json())
        for job in workflow.jobs.values():
            await self.persist_job(workflow.id, job)
        workflow.mark_as_persisted()
        logger.debug(f"Persisted workflow {workflow.id} with {len(workflow.jobs)} jobs")
        return True

    async def persist_job(self, workflow_id: str, job: Job) -> None:
        job.workflow_id = workflow_id
        await self.store.set(job_key(workflow_id, job.name), job.model_dump_json())

    async def destroy_workflow(self, workflow: Workflow) -> None:
        await self.store.delete(workflow_key(workflow.id))
        for key in await self._job_keys(workflow):
            await self.store.delete(key)
        logger.info(f"Destroyed workflow {workflow.id}")

    async def destroy_job(self, workflow_id: str, job: Job) -> None:
        await self.store.delete(job_key(workflow_id, job.name))

    async def expire_workflow(self, workflow: Workflow, ttl: Optional[int] = None) -> None:
        ttl = ttl if ttl is not None else self.ttl
        await self.store.expire(workflow_key(workflow.id), ttl)
        for key in await self._job_keys(workflow):
            await self.store.expire(key, ttl)
        logger.debug(f"Workflow {workflow.id} expires in {ttl}s")

    async def expire_job(self, workflow_id: str, job: Job, ttl: Optional[int] = None) -> None:
        ttl = ttl if ttl is not None else self.ttl
        await self.store.expire(job_key(workflow_id, job.name), ttl)

    async def _job_keys(self, workflow: Workflow) -> List[str]:
        keys = set(await self.store.scan(job_pattern(workflow.id)))
        keys.update(job_key(workflow.id, name) for name in workflow.jobs)
        return sorted(keys)

    # ------------------------------------------------------------------
    # Loading
    async def find_workflow(self, workflow_id: str) -> Workflow:
        data = decode(await self.store.get(workflow_key(workflow_id)))
        if data is None:
            raise WorkflowNotFound(f"Workflow with id {workflow_id} doesn't exist")
        record = WorkflowRecord.model_validate(data)

        keys = sorted(await self.store.scan(job_pattern(workflow_id)))
        jobs = [
            self._job_from_data(job_data)
            for job_data in map(decode, await self.store.mget(keys))
            if job_data is not None
        ]
        workflow_cls = self.registry.resolve_workflow(record.klass)
        return workflow_cls.from_record(record, jobs)

    async def find_job(self, workflow_id: str, job_id: str) -> Optional[Job]:
        """Load one job by exact name, or by bare type name.

        A bare ``TypeName`` matches stored names of the form
        ``TypeName-<id>``; the first match in key order wins.
        """
        if JOB_NAME_PATTERN.match(job_id):
            keys = [job_key(workflow_id, job_id)]
        else:
            prefix = job_key(workflow_id, f"{job_id}-")
            scanned = await self.store.scan(job_pattern(workflow_id, f"{job_id}-"))
            keys = sorted(key for key in scanned if key.startswith(prefix))

        for raw in await self.store.mget(keys):
            data = decode(raw)
            if data is not None:
                return self._job_from_data(data)
        return None

    def _job_from_data(self, data: dict) -> Job:
        job_cls = self.registry.resolve_job(data["klass"])
        return job_cls.model_validate(data)

    async def all_workflows(
        self, limit: Optional[int] = None, offset: int = 0
    ) -> List[Workflow]:
        """Stored workflows, newest first."""
        records = await self._workflow_records()
        records.sort(key=lambda record: -record.created_at)
        end = None if limit is None else offset + limit

        workflows: List[Workflow] = []
        for record in records[offset:end]:
            try:
                workflows.append(await self.find_workflow(record.id))
            except WorkflowNotFound:
                logger.debug(f"Workflow {record.id} disappeared while listing")
        return workflows

    async def all_workflows_size(self) -> int:
        return len(await self._workflow_records())

    async def _workflow_records(self) -> List[WorkflowRecord]:
        keys = await self.store.scan(workflow_pattern())
        return [
            WorkflowRecord.model_validate(data)
            for data in map(decode, await self.store.mget(keys))
            if data is not None
        ]

    async def _is_stopped(self, workflow_id: str) -> bool:
        data = decode(await self.store.get(workflow_key(workflow_id)))
        if data is None:
            raise WorkflowNotFound(f"Workflow with id {workflow_id} doesn't exist")
        return bool(data.get("stopped", False))


def get_repository(
    config: Optional[TrellisConfig] = None, registry: TypeRegistry = REGISTRY
) -> Repository:
    """Build a repository wired to the configured store and transport."""
    config = config or load_config()
    dispatcher = JobDispatcher(get_transport(config=config), namespace=config.namespace)
    return Repository(get_store(config=config), dispatcher, registry=registry, ttl=config.ttl)

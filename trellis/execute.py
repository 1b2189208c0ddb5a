"""Worker loop executing dispatched jobs."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_MAX_ATTEMPTS
from .contracts import JobMessage
from .errors import LoopFail, SoftFail, WorkflowNotFound
from .job import Job
from .repository import Repository
from .transports import BaseTransport
from .utils import retry
from .workflow import Workflow

logger = logging.getLogger(__name__)


class JobExecutor:
    """Consume job messages from one queue and run them.

    Failures of a job's own logic are recorded on the job and never
    propagate to the loop. Store and transport errors do propagate.
    """

    def __init__(
        self,
        repository: Repository,
        transport: BaseTransport,
        queue: Optional[str] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._repository = repository
        self._transport = transport
        self._queue = queue or repository.dispatcher.namespace
        self._max_attempts = max_attempts

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Start listening for job messages on the executor's queue."""
        logger.info(f"Worker listening on {self._queue}")
        async for raw_message, message in self._transport.subscribe(
            self._queue, lifespan=lifespan
        ):
            await self.handle(message)
            await self._transport.ack(raw_message)

    async def handle(self, message: JobMessage) -> Optional[Job]:
        """Run the job named by ``message`` and record its outcome."""
        try:
            workflow = await self._repository.find_workflow(message.workflow_id)
        except WorkflowNotFound:
            logger.warning(
                f"Dropping {message.job_name}: workflow {message.workflow_id} no longer exists"
            )
            return None

        job = workflow.find_job(message.job_name)
        if job is None:
            logger.warning(f"Dropping unknown job {message.job_name} in {workflow.id}")
            return None
        if job.succeeded:
            logger.info(f"Skipping {job.name}: already succeeded")
            await self._repository.enqueue_outgoing_jobs(workflow.id, job)
            return job

        job.payloads = self._incoming_payloads(workflow, job)
        job.start()
        await self._repository.persist_job(workflow.id, job)

        try:
            if job.expired:
                raise LoopFail(f"{job.name} passed its loop end_time")
            await job.perform()
        except SoftFail as e:
            job.fail(soft=True)
            await self._repository.persist_job(workflow.id, job)
            logger.warning(f"Job {job.name} failed softly: {e}")
        except LoopFail as e:
            job.fail()
            await self._repository.persist_job(workflow.id, job)
            logger.error(f"Job {job.name} stopped looping: {e}")
        except Exception:
            job.fail()
            await self._repository.persist_job(workflow.id, job)
            logger.exception(f"Job {job.name} failed on attempt {message.attempt}")
            if self._should_retry(message, job):
                await retry.wait_before_retry(message.attempt)
                await self._repository.enqueue_job(
                    workflow.id, job, attempt=message.attempt + 1
                )
        else:
            job.finish()
            await self._repository.persist_job(workflow.id, job)
            logger.info(f"Job {job.name} succeeded in workflow {workflow.id}")
            await self._repository.enqueue_outgoing_jobs(workflow.id, job)
        return job

    def _should_retry(self, message: JobMessage, job: Job) -> bool:
        return (
            message.retry
            and not job.no_retries
            and not job.expired
            and message.attempt < self._max_attempts
        )

    @staticmethod
    def _incoming_payloads(workflow: Workflow, job: Job) -> List[Dict[str, Any]]:
        payloads = []
        for name in job.incoming:
            parent = workflow.jobs.get(name)
            if parent is not None:
                payloads.append(
                    {"id": parent.name, "klass": parent.klass, "output": parent.output_payload}
                )
        return payloads

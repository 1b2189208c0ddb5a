"""Hand-off of admitted jobs to the work queue."""

from __future__ import annotations

import logging

from .constants import DEFAULT_NAMESPACE
from .contracts import JobMessage
from .job import Job
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Publish one execution request per admitted job.

    Nothing is awaited beyond the publish call itself; progress is only
    observable later through the job's stored state.
    """

    def __init__(self, transport: BaseTransport, namespace: str = DEFAULT_NAMESPACE) -> None:
        self._transport = transport
        self.namespace = namespace

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    def queue_for(self, job: Job) -> str:
        return job.full_queue_options().get("queue") or self.namespace

    async def dispatch(self, workflow_id: str, job: Job, attempt: int = 1) -> JobMessage:
        message = JobMessage(
            workflow_id=workflow_id,
            job_name=job.name,
            queue=self.queue_for(job),
            retry=not job.no_retries,
            attempt=attempt,
        )
        await self._transport.publish(message.queue, message)
        logger.debug(
            f"Dispatched {job.name} of workflow {workflow_id} to {message.queue} "
            f"(attempt {attempt})"
        )
        return message

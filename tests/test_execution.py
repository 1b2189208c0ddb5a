"""Job execution tests."""

import pytest

from trellis import JobExecutor
from trellis.utils.retry import compute_backoff

from tests.conftest import NAMESPACE
from tests.fixtures.flows import FetchPage, Publish


async def _drain(executor, transport, queue=NAMESPACE):
    handled = []
    while transport._queues[queue]:
        _, message = transport._queues[queue].popleft()
        handled.append(await executor.handle(message))
    return handled


async def _start(repository, type_name, *arguments):
    workflow = await repository.create_workflow(type_name, *arguments)
    await repository.start_workflow(workflow)
    return workflow


@pytest.mark.asyncio
async def test_diamond_runs_to_completion(repository, transport):
    workflow = await _start(repository, "DiamondFlow", "music")
    executor = JobExecutor(repository, transport)
    auditor = JobExecutor(repository, transport, queue="audit")

    handled = await _drain(executor, transport)
    assert [job.klass for job in handled] == ["Prepare", "FetchPage", "FetchPage", "Publish"]

    stored = await repository.find_workflow(workflow.id)
    assert stored.status == "running"
    assert stored.find_job("Prepare").output_payload == {"prepared": "music"}
    publish = stored.find_job("Publish")
    assert publish.succeeded
    assert len(publish.output_payload) == 2

    await _drain(auditor, transport, "audit")
    stored = await repository.find_workflow(workflow.id)
    assert stored.finished
    assert stored.status == "finished"


@pytest.mark.asyncio
async def test_payloads_carry_parent_output(repository, transport):
    await _start(repository, "LinearFlow")
    executor = JobExecutor(repository, transport)

    prepare, publish = await _drain(executor, transport)

    assert isinstance(publish, Publish)
    assert publish.payloads == [
        {"id": prepare.name, "klass": "Prepare", "output": {"prepared": "default"}}
    ]
    assert publish.output_payload == [str({"prepared": "default"})]


@pytest.mark.asyncio
async def test_worker_loop_consumes_queue(repository, transport):
    workflow = await _start(repository, "LinearFlow")
    executor = JobExecutor(repository, transport)

    await executor.start(lifespan=0.5)

    stored = await repository.find_workflow(workflow.id)
    assert stored.finished
    assert not stored.failed
    assert transport.pending(NAMESPACE) == []


@pytest.mark.asyncio
async def test_hard_failure_blocks_dependents(repository, transport):
    workflow = await _start(repository, "FailureFlow", "hard")
    executor = JobExecutor(repository, transport)

    (job,) = await _drain(executor, transport)

    assert job.failed
    assert not job.failed_softly
    stored = await repository.find_workflow(workflow.id)
    assert stored.status == "failed"
    assert not stored.find_job("Publish").enqueued


@pytest.mark.asyncio
async def test_soft_failure_blocks_dependents(repository, transport):
    workflow = await _start(repository, "FailureFlow", "soft")
    executor = JobExecutor(repository, transport)

    (job,) = await _drain(executor, transport)

    assert job.failed_softly
    stored = await repository.find_workflow(workflow.id)
    assert stored.find_job("Unreliable").failed_softly
    assert not stored.find_job("Publish").enqueued


@pytest.mark.asyncio
async def test_retryable_job_is_requeued_until_attempts_run_out(
    repository, transport, monkeypatch
):
    delays = []

    async def no_wait(attempt, max_delay=60.0):
        delays.append(attempt)
        return 0.0

    monkeypatch.setattr("trellis.utils.retry.wait_before_retry", no_wait)
    workflow = await _start(repository, "FailureFlow", "retry")
    executor = JobExecutor(repository, transport, max_attempts=2)

    _, first = transport._queues[NAMESPACE].popleft()
    assert first.retry
    await executor.handle(first)

    (requeued,) = transport.pending(NAMESPACE)
    assert requeued.attempt == 2
    assert delays == [1]
    stored = await repository.find_workflow(workflow.id)
    assert stored.find_job("Flaky").enqueued
    assert not stored.find_job("Flaky").failed

    await _drain(executor, transport)

    assert transport.pending(NAMESPACE) == []
    stored = await repository.find_workflow(workflow.id)
    assert stored.find_job("Flaky").failed
    assert not stored.find_job("Publish").enqueued


@pytest.mark.asyncio
async def test_expired_loop_job_fails_without_retry(repository, transport):
    workflow = await _start(repository, "FailureFlow", "loop")
    executor = JobExecutor(repository, transport)

    (job,) = await _drain(executor, transport)

    assert job.failed
    assert transport.pending(NAMESPACE) == []
    stored = await repository.find_workflow(workflow.id)
    assert stored.status == "failed"


@pytest.mark.asyncio
async def test_stopped_workflow_does_not_advance(repository, transport):
    workflow = await _start(repository, "LinearFlow")
    await repository.stop_workflow(workflow.id)
    executor = JobExecutor(repository, transport)

    (job,) = await _drain(executor, transport)

    assert job.succeeded
    stored = await repository.find_workflow(workflow.id)
    assert not stored.find_job("Publish").enqueued
    assert stored.status == "stopped"


@pytest.mark.asyncio
async def test_message_for_destroyed_workflow_is_dropped(repository, transport):
    workflow = await _start(repository, "LinearFlow")
    await repository.destroy_workflow(workflow)
    executor = JobExecutor(repository, transport)

    assert await _drain(executor, transport) == [None]


@pytest.mark.asyncio
async def test_succeeded_job_is_not_run_again(repository, transport):
    workflow = await _start(repository, "DiamondFlow")
    executor = JobExecutor(repository, transport)
    _, message = transport._queues[NAMESPACE].popleft()

    await executor.handle(message)
    pages = transport.pending(NAMESPACE)
    assert len(pages) == 2

    job = await executor.handle(message)
    assert job.succeeded
    assert transport.pending(NAMESPACE) == pages

    stored = await repository.find_workflow(workflow.id)
    assert all(page.enqueued for page in stored.jobs.values() if isinstance(page, FetchPage))


@pytest.mark.asyncio
async def test_redelivered_message_enqueues_dependents(repository, transport, monkeypatch):
    workflow = await _start(repository, "LinearFlow")
    executor = JobExecutor(repository, transport)
    _, message = transport._queues[NAMESPACE].popleft()

    enqueue_outgoing_jobs = repository.enqueue_outgoing_jobs

    async def crash(workflow_id, job):
        raise ConnectionError("worker lost the store")

    monkeypatch.setattr(repository, "enqueue_outgoing_jobs", crash)
    with pytest.raises(ConnectionError):
        await executor.handle(message)
    monkeypatch.setattr(repository, "enqueue_outgoing_jobs", enqueue_outgoing_jobs)

    stored = await repository.find_workflow(workflow.id)
    assert stored.find_job("Prepare").succeeded
    assert transport.pending(NAMESPACE) == []

    job = await executor.handle(message)

    assert job.succeeded
    (pending,) = transport.pending(NAMESPACE)
    stored = await repository.find_workflow(workflow.id)
    assert pending.job_name == stored.find_job("Publish").name
    assert stored.find_job("Publish").enqueued


def test_compute_backoff_growth_and_cap():
    first = compute_backoff(1, base=2, jitter=0)
    second = compute_backoff(2, base=2, jitter=0)
    assert second > first
    assert compute_backoff(50, base=2, jitter=0, max_delay=10) == 10

"""Job state machine tests."""

import json
import time

import pytest

from trellis import Job, LoopFail, SoftFail
from trellis.errors import JobError

from tests.fixtures.flows import FetchPage, Prepare

TIMESTAMPS = ("enqueued_at", "started_at", "finished_at", "failed_at")


def _job(**kwargs) -> Prepare:
    return Prepare(name="Prepare-1", **kwargs)


def test_new_job_is_pending():
    job = _job()
    assert not job.enqueued
    assert not job.started
    assert not job.running
    assert not job.finished
    assert not job.failed
    assert not job.succeeded
    assert job.has_no_dependencies


def test_enqueue_resets_later_timestamps():
    job = _job(started_at=1, finished_at=2, failed_at=2, soft_fail=True)

    job.enqueue()

    assert job.enqueued
    assert job.started_at is None
    assert job.finished_at is None
    assert job.failed_at is None
    assert job.soft_fail is None


def test_enqueue_then_clear_is_pending():
    job = _job()
    job.enqueue()
    job.clear()

    assert all(getattr(job, field) is None for field in TIMESTAMPS)
    assert job.soft_fail is None
    assert not job.enqueued


def test_start_then_finish_succeeds():
    job = _job()
    job.enqueue()
    job.start()
    assert job.running
    assert not job.finished

    job.finish()
    assert not job.running
    assert job.finished
    assert job.succeeded
    assert not job.failed


def test_hard_failure():
    job = _job()
    job.start()
    job.fail()

    assert job.finished
    assert job.failed
    assert not job.failed_softly
    assert not job.succeeded
    assert job.finished_at == job.failed_at


def test_soft_failure_is_not_success():
    job = _job()
    job.start()
    job.fail(soft=True)

    assert job.failed_softly
    assert not job.succeeded


def test_failed_at_requires_finished_at():
    with pytest.raises(ValueError):
        _job(failed_at=10)


def test_soft_fail_requires_failed_at():
    with pytest.raises(ValueError):
        _job(finished_at=10, soft_fail=True)


def test_expired_follows_loop_end_time():
    assert not _job().expired
    assert not _job(params={"loop_opts": {}}).expired
    assert _job(params={"loop_opts": {"end_time": time.time() - 10}}).expired
    assert not _job(params={"loop_opts": {"end_time": time.time() + 3600}}).expired


def test_no_retries_reflects_queue_options():
    assert _job().no_retries
    assert not FetchPage(name="FetchPage-1").no_retries
    assert FetchPage.full_queue_options() == {"retry": True}


def test_record_shape():
    job = _job(incoming=["Other-1"], params={"a": 1})
    job.output({"ok": True})
    job.payloads = [{"id": "Other-1", "klass": "Other", "output": 1}]

    data = json.loads(job.model_dump_json())

    assert data["klass"] == "Prepare"
    assert data["output_payload"] == {"ok": True}
    assert "payloads" not in data
    assert set(data) == {
        "name",
        "klass",
        "incoming",
        "outgoing",
        "params",
        "workflow_id",
        "enqueued_at",
        "started_at",
        "finished_at",
        "failed_at",
        "soft_fail",
        "output_payload",
    }
    assert Prepare.model_validate(data).model_dump() == job.model_dump()


def test_error_aliases():
    assert Job.Error is JobError
    assert Job.SoftFail is SoftFail
    assert Job.LoopFail is LoopFail
    assert issubclass(Job.SoftFail, Job.Error)
    assert issubclass(Job.LoopFail, Job.Error)

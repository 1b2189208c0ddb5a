"""Workflow graph container tests."""

import pytest

from trellis import Workflow
from trellis.persistence.models import WorkflowRecord

from tests.fixtures.flows import (
    Audit,
    DiamondFlow,
    FetchPage,
    LinearFlow,
    Prepare,
    Publish,
)


def _by_type(workflow, job_cls):
    return [job for job in workflow.jobs.values() if isinstance(job, job_cls)]


def test_job_names_follow_type_convention():
    flow = LinearFlow()
    assert len(flow.jobs) == 2
    for name, job in flow.jobs.items():
        assert name == job.name
        assert name.startswith(f"{job.klass}-")


def test_edges_are_symmetric():
    flow = DiamondFlow()
    for job in flow.jobs.values():
        for name in job.outgoing:
            assert job.name in flow.jobs[name].incoming
        for name in job.incoming:
            assert job.name in flow.jobs[name].outgoing


def test_diamond_shape():
    flow = DiamondFlow()
    (prepare,) = _by_type(flow, Prepare)
    (publish,) = _by_type(flow, Publish)
    pages = _by_type(flow, FetchPage)

    assert sorted(prepare.outgoing) == sorted(page.name for page in pages)
    assert sorted(publish.incoming) == sorted(page.name for page in pages)
    assert {job.name for job in flow.initial_jobs} == {
        prepare.name,
        _by_type(flow, Audit)[0].name,
    }


def test_before_and_class_references():
    class Fanned(Workflow):
        def configure(self):
            self.run(FetchPage)
            self.run(FetchPage)
            self.run(Publish, after=FetchPage)
            self.run(Prepare, before=FetchPage)

    flow = Fanned()
    (publish,) = _by_type(flow, Publish)
    (prepare,) = _by_type(flow, Prepare)
    pages = _by_type(flow, FetchPage)

    assert len(publish.incoming) == 2
    assert len(prepare.outgoing) == 2
    assert all(page.incoming == [prepare.name] for page in pages)


def test_unknown_dependency_is_rejected():
    class Broken(Workflow):
        def configure(self):
            self.run(Publish, after="Missing-1")

    with pytest.raises(ValueError):
        Broken()


def test_find_job():
    flow = LinearFlow()
    (prepare,) = _by_type(flow, Prepare)

    assert flow.find_job(prepare.name) is prepare
    assert flow.find_job("Prepare") is prepare
    assert flow.find_job("Audit") is None
    assert flow.find_job("Prepare-does-not-exist") is None


def test_clear_job_children_only_touches_descendants():
    flow = DiamondFlow()
    for job in flow.jobs.values():
        job.enqueue()
        job.start()
        job.finish()
    (prepare,) = _by_type(flow, Prepare)
    left = _by_type(flow, FetchPage)[0]
    untouched = {
        name: job.model_dump()
        for name, job in flow.jobs.items()
        if not isinstance(job, Publish) and job is not left
    }

    cleared = flow.clear_job_children(left)

    assert [job.klass for job in cleared] == ["Publish"]
    (publish,) = _by_type(flow, Publish)
    assert publish.enqueued_at is None and publish.finished_at is None
    assert left.succeeded
    for name, dump in untouched.items():
        assert flow.jobs[name].model_dump() == dump

    assert len(flow.clear_job_children(prepare)) == 3


def test_id_is_propagated_to_jobs():
    flow = LinearFlow()
    flow.id = "wf-1"
    assert all(job.workflow_id == "wf-1" for job in flow.jobs.values())


def test_stop_and_start_flags():
    flow = LinearFlow()
    assert flow.status == "pending"
    flow.mark_as_stopped()
    assert flow.stopped
    assert flow.status == "stopped"
    flow.mark_as_started()
    assert not flow.stopped


def test_status_tracks_jobs():
    flow = LinearFlow()
    first, second = flow.jobs.values()
    first.enqueue()
    assert flow.status == "running"
    first.start()
    first.finish()
    second.enqueue()
    second.start()
    second.fail()
    assert flow.status == "failed"
    second.enqueue()
    second.start()
    second.finish()
    assert flow.status == "finished"


def test_from_record_keeps_identity():
    original = DiamondFlow("music")
    original.id = "wf-2"
    original.mark_as_stopped()
    record = WorkflowRecord.model_validate(original.to_record().model_dump())
    record.created_at = 1234

    restored = DiamondFlow.from_record(record, original.jobs.values())

    assert restored.id == "wf-2"
    assert restored.created_at == 1234
    assert restored.stopped
    assert restored.arguments == ["music"]
    assert restored.persisted
    assert restored.jobs.keys() == original.jobs.keys()

"""Type registry tests."""

import pytest

from trellis import Job, TypeRegistry, Workflow, WorkflowNotFound

from tests.fixtures.flows import LinearFlow, Prepare, registry


def test_resolves_registered_types():
    assert registry.resolve_workflow("LinearFlow") is LinearFlow
    assert registry.resolve_job("Prepare") is Prepare


def test_unknown_types_raise_workflow_not_found():
    with pytest.raises(WorkflowNotFound):
        registry.resolve_workflow("Nope")
    with pytest.raises(WorkflowNotFound):
        registry.resolve_job("Nope")


def test_register_as_decorator_and_rejects_other_types():
    local = TypeRegistry()

    @local.register
    class Local(Job):
        pass

    @local.register
    class LocalFlow(Workflow):
        def configure(self):
            self.run(Local)

    assert local.resolve_job("Local") is Local
    assert local.resolve_workflow("LocalFlow") is LocalFlow
    with pytest.raises(TypeError):
        local.register(dict)

from __future__ import annotations

import logging
from typing import Dict, Type, TypeVar

from ..errors import WorkflowNotFound
from ..job import Job
from ..workflow import Workflow

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=type)


class TypeRegistry:
    """Explicit mapping from type names to workflow and job classes.

    Stored records only carry a ``klass`` string; this is the only place
    that string is turned back into a constructor.
    """

    def __init__(self) -> None:
        self.workflows: Dict[str, Type[Workflow]] = {}
        self.jobs: Dict[str, Type[Job]] = {}

    def register(self, cls: T) -> T:
        """Add ``cls``; usable as a class decorator."""
        if isinstance(cls, type) and issubclass(cls, Workflow):
            self._add(self.workflows, cls)
        elif isinstance(cls, type) and issubclass(cls, Job):
            self._add(self.jobs, cls)
        else:
            raise TypeError(f"{cls!r} is neither a Workflow nor a Job subclass")
        return cls

    @staticmethod
    def _add(table: Dict[str, type], cls: type) -> None:
        name = cls.type_name()
        existing = table.get(name)
        if existing is not None and existing is not cls:
            logger.warning(f"Replacing registered type {name}: {existing!r} -> {cls!r}")
        table[name] = cls

    def resolve_workflow(self, name: str) -> Type[Workflow]:
        try:
            return self.workflows[name]
        except KeyError:
            raise WorkflowNotFound(f"Workflow type {name!r} is not registered") from None

    def resolve_job(self, name: str) -> Type[Job]:
        try:
            return self.jobs[name]
        except KeyError:
            raise WorkflowNotFound(f"Job type {name!r} is not registered") from None

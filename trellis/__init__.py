"""trellis: dependency-driven workflow orchestration over a shared store."""

from .contracts import JobMessage
from .dispatch import JobDispatcher
from .errors import JobError, JobNotFound, LoopFail, SoftFail, WorkflowNotFound
from .execute import JobExecutor
from .job import Job
from .persistence import get_store
from .registry import REGISTRY, TypeRegistry, register
from .repository import Repository, get_repository
from .transports import get_transport
from .workflow import Workflow

__version__ = "0.1.0"
__all__ = [
    "Job",
    "JobDispatcher",
    "JobError",
    "JobExecutor",
    "JobMessage",
    "JobNotFound",
    "LoopFail",
    "REGISTRY",
    "Repository",
    "SoftFail",
    "TypeRegistry",
    "Workflow",
    "WorkflowNotFound",
    "get_repository",
    "get_store",
    "get_transport",
    "register",
]

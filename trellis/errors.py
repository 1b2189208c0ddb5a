"""Exceptions raised by trellis."""


class TrellisError(Exception):
    """Base exception for trellis errors."""


class WorkflowNotFound(TrellisError):
    """Unknown workflow id, or a type name that no registry entry resolves."""


class JobNotFound(TrellisError):
    """A job name does not exist in the workflow it was looked up in."""


class JobError(Exception):
    """Raised by job business logic to signal a failure."""


class SoftFail(JobError):
    """A recoverable failure; recorded with ``soft_fail`` set."""


class LoopFail(JobError):
    """A looping job ran past the ``end_time`` of its ``loop_opts``."""

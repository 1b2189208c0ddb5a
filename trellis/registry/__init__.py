"""Lookup of workflow and job types by their stored type name."""

from __future__ import annotations

from typing import TypeVar

from .types import TypeRegistry

T = TypeVar("T", bound=type)

# Process-wide registry used when a repository is not given its own. Types
# are added at import time with ``@register``.
REGISTRY = TypeRegistry()


def register(cls: T) -> T:
    """Class decorator adding a ``Workflow`` or ``Job`` subclass to ``REGISTRY``."""
    return REGISTRY.register(cls)


__all__ = ["REGISTRY", "TypeRegistry", "register"]

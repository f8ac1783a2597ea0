"""
Crucible Core - Shared types and enums.
"""

from __future__ import annotations

from enum import StrEnum


class Phase(StrEnum):
    """Run-wide phase selected for a scope tree."""

    UP = "up"
    DESTROY = "destroy"
    READ = "read"


class LifecyclePhase(StrEnum):
    """Phase of a single provider handler invocation."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ResourceStatus(StrEnum):
    """Persisted status of a resource state record."""

    CREATING = "creating"
    CREATED = "created"
    UPDATING = "updating"
    UPDATED = "updated"
    DELETING = "deleting"
    DELETED = "deleted"

    @property
    def is_stable(self) -> bool:
        """True once a create or update has completed."""
        return self in (ResourceStatus.CREATED, ResourceStatus.UPDATED)

    @property
    def is_in_progress(self) -> bool:
        return self in (ResourceStatus.CREATING, ResourceStatus.UPDATING)


class DestroyStrategy(StrEnum):
    """How the resources of a scope are torn down."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"

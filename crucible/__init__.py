"""
Crucible - Declarative infrastructure reconciliation.

Declare resources as data; Crucible creates, updates and deletes them
through provider handlers and keeps enough state to repeat runs
idempotently.
"""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("crucible")
except PackageNotFoundError:
    # Package not installed, fallback to pyproject.toml
    __version__ = "0.1.0"

from crucible.app import crucible, destroy, run, secret
from crucible.context import Context
from crucible.core.exceptions import CrucibleError
from crucible.core.types import DestroyStrategy, LifecyclePhase, Phase, ResourceStatus
from crucible.resource import PendingResource, Resource, resource
from crucible.scope import Scope
from crucible.secrets.secret import Secret

__all__ = [
    "Context",
    "CrucibleError",
    "DestroyStrategy",
    "LifecyclePhase",
    "PendingResource",
    "Phase",
    "Resource",
    "ResourceStatus",
    "Scope",
    "Secret",
    "__version__",
    "crucible",
    "destroy",
    "resource",
    "run",
    "secret",
]

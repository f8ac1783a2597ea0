"""
Crucible Core - Errors, enums, symbols and the provider registry.
"""

from crucible.core.registry import Provider, ProviderOptions, ProviderRegistry, get_registry
from crucible.core.symbols import Symbol
from crucible.core.types import DestroyStrategy, LifecyclePhase, Phase, ResourceStatus

__all__ = [
    "DestroyStrategy",
    "LifecyclePhase",
    "Phase",
    "Provider",
    "ProviderOptions",
    "ProviderRegistry",
    "ResourceStatus",
    "Symbol",
    "get_registry",
]

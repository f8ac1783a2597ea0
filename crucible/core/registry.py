"""
Provider Registry - Process-wide table of resource kinds.

Maps a namespaced kind string ("<domain>::<ResourceName>") to the handler
that implements its lifecycle. Populated once per kind at import time,
before any resource is declared.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING, Any

from loguru import logger

from crucible.core.exceptions import DuplicateProviderError, ProviderNotFoundError
from crucible.core.types import DestroyStrategy

if TYPE_CHECKING:
    from crucible.context import Context

Handler = Callable[["Context", str, Any], Awaitable[Mapping[str, Any] | None]]
DynamicResolver = Callable[[str], "Provider | None"]


@dataclass(frozen=True)
class ProviderOptions:
    """Per-kind engine behaviour."""

    always_update: bool = False
    destroy_strategy: DestroyStrategy = DestroyStrategy.SEQUENTIAL
    # False: delete errors are ignored, state is dropped, the object is kept
    delete: bool = True


@dataclass(frozen=True)
class Provider:
    """A registered resource kind."""

    kind: str
    handler: Handler
    options: ProviderOptions = field(default_factory=ProviderOptions)


def _same_handler(a: Handler, b: Handler) -> bool:
    # Re-importing a module (e.g. test reloads) produces a new function object
    # for the same definition; treat that as the same handler.
    if a is b:
        return True
    code_a = getattr(a, "__code__", None)
    return (
        code_a is not None
        and getattr(a, "__module__", None) == getattr(b, "__module__", None)
        and getattr(a, "__qualname__", None) == getattr(b, "__qualname__", None)
        and code_a == getattr(b, "__code__", None)
    )


class ProviderRegistry:
    """
    Registry for resource providers.

    Usage:
        registry = ProviderRegistry()
        registry.register("random::String", handler)

        provider = registry.get("random::String")
    """

    _instance: ProviderRegistry | None = None
    _instance_lock = Lock()

    _providers: dict[str, Provider]
    _resolvers: list[DynamicResolver]
    _lock: Lock

    def __new__(cls) -> ProviderRegistry:
        """Singleton pattern for global registry access."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._providers = {}
                    instance._resolvers = []
                    instance._lock = Lock()
                    cls._instance = instance
        return cls._instance

    def register(
        self,
        kind: str,
        handler: Handler,
        options: ProviderOptions | None = None,
    ) -> Provider:
        """
        Register a handler for a resource kind.

        Raises:
            DuplicateProviderError: If the kind is already bound to a
                different handler, or to the same handler with other options.
        """
        provider = Provider(kind=kind, handler=handler, options=options or ProviderOptions())
        with self._lock:
            existing = self._providers.get(kind)
            if existing is not None:
                if not _same_handler(existing.handler, handler):
                    raise DuplicateProviderError(kind)
                if existing.options != provider.options:
                    raise DuplicateProviderError(kind, "options differ")
                return existing
            self._providers[kind] = provider

        logger.debug(f"Registered provider: {kind}")
        return provider

    def get(self, kind: str) -> Provider:
        """
        Get the provider for a kind.

        Raises:
            ProviderNotFoundError: If the kind is not registered.
        """
        provider = self._providers.get(kind)
        if provider is None:
            raise ProviderNotFoundError(kind)
        return provider

    def has(self, kind: str) -> bool:
        """Check if a kind is registered."""
        return kind in self._providers

    def register_dynamic_resolver(self, resolver: DynamicResolver) -> None:
        """Register a fallback consulted when deleting an unknown kind."""
        with self._lock:
            self._resolvers.append(resolver)

    def resolve_deletion_handler(self, kind: str) -> Provider | None:
        """Find a provider able to delete ``kind``, trying dynamic resolvers last."""
        provider = self._providers.get(kind)
        if provider is not None:
            return provider
        for resolver in list(self._resolvers):
            result = resolver(kind)
            if result is not None:
                return result
        return None

    def unregister(self, kind: str) -> None:
        """Remove a kind (useful for testing)."""
        with self._lock:
            self._providers.pop(kind, None)

    def list_all(self) -> list[str]:
        """List all registered kinds."""
        return list(self._providers.keys())

    def clear(self) -> None:
        """Clear all registered providers (useful for testing)."""
        with self._lock:
            self._providers.clear()
            self._resolvers.clear()

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)."""
        cls._instance = None


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return ProviderRegistry()


def register_dynamic_resolver(resolver: DynamicResolver) -> None:
    """Convenience function to register a dynamic deletion resolver."""
    get_registry().register_dynamic_resolver(resolver)


__all__ = [
    "Handler",
    "Provider",
    "ProviderOptions",
    "ProviderRegistry",
    "get_registry",
    "register_dynamic_resolver",
]

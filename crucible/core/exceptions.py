"""
Core Exceptions - Unified error hierarchy for Crucible.

Follows SRP: each exception type handles one category of errors.
Control-flow signals (replace/destroy) are NOT errors and live in
crucible.engine.outcome.
"""


class CrucibleError(Exception):
    """Base exception for all Crucible errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | {self.details}"
        return self.message


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(CrucibleError):
    """Input validation failed."""
    pass


class InvalidResourceIdError(ValidationError):
    """Resource or scope identifier is empty or malformed."""

    def __init__(self, resource_id: str, reason: str, qualifier: str = "Resource"):
        super().__init__(
            f"{qualifier} ID {reason}: {resource_id!r}",
            {"id": resource_id, "qualifier": qualifier}
        )
        self.resource_id = resource_id


class ResourceKindConflictError(ValidationError):
    """An id was reused within a scope under a different kind."""

    def __init__(self, resource_id: str, existing_kind: str, new_kind: str):
        super().__init__(
            f"Resource {resource_id} already exists in the stack and is of a "
            f"different type: '{existing_kind}' != '{new_kind}'",
            {"id": resource_id, "existing_kind": existing_kind, "kind": new_kind}
        )
        self.resource_id = resource_id


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(CrucibleError):
    """Configuration error."""
    pass


class MissingPasswordError(ConfigurationError):
    """A secret was (de)serialized in a scope without a password."""

    def __init__(self, operation: str):
        super().__init__(
            f"Cannot {operation} secret without password, did you forget to set "
            "password when initializing your crucible app? "
            "(CRUCIBLE_PASSWORD or password=...)",
            {"operation": operation}
        )


class InvalidConfigError(ConfigurationError):
    """Invalid configuration value."""
    pass


# =============================================================================
# Provider Errors
# =============================================================================

class ProviderError(CrucibleError):
    """Provider registration or lookup error."""
    pass


class ProviderNotFoundError(ProviderError):
    """No provider registered for a resource kind."""

    def __init__(self, kind: str, fqn: str | None = None):
        target = f"resource \"{fqn}\" type {kind}" if fqn else f"kind \"{kind}\""
        super().__init__(
            f"Provider not found for {target}. You may need to import the "
            "module that defines it.",
            {"kind": kind, "fqn": fqn}
        )
        self.kind = kind


class DuplicateProviderError(ProviderError):
    """A resource kind was registered twice with different handlers."""

    def __init__(self, kind: str, reason: str | None = None):
        message = f"Resource {kind} already exists"
        if reason:
            message += f" ({reason})"
        super().__init__(message, {"kind": kind, "reason": reason})
        self.kind = kind


class AdoptionConflictError(ProviderError):
    """Create failed because the external object already exists.

    Providers raise this when the owning scope does not have ``adopt``
    enabled; with adoption they are expected to look up and update instead.
    """

    def __init__(self, kind: str, identifier: str):
        super().__init__(
            f"{kind} '{identifier}' already exists. Enable adopt to manage "
            "the existing object.",
            {"kind": kind, "identifier": identifier}
        )
        self.identifier = identifier


# =============================================================================
# Lifecycle Errors
# =============================================================================

class LifecycleError(CrucibleError):
    """Resource lifecycle protocol violated."""
    pass


class ReplaceInCreatePhaseError(LifecycleError):
    """replace() was called while creating a resource."""

    def __init__(self, kind: str, fqn: str):
        super().__init__(
            f"Resource {kind} {fqn} cannot be replaced in create phase.",
            {"kind": kind, "fqn": fqn}
        )


class ReplaceWithChildrenError(LifecycleError):
    """A deferred replacement was requested for a resource owning children."""

    def __init__(self, fqn: str):
        super().__init__(
            f"Resource {fqn} has children and cannot be replaced.",
            {"fqn": fqn}
        )


class StateConsistencyError(LifecycleError):
    """Persisted state is in a condition the caller cannot proceed from."""
    pass


class ResourceNotFoundError(LifecycleError):
    """A resource has no state while running in read phase."""

    def __init__(self, fqn: str, is_selected: bool | None):
        super().__init__(
            f"Resource \"{fqn}\" not found and running in 'read' phase. "
            f"Selected({is_selected})",
            {"fqn": fqn, "is_selected": is_selected}
        )


class RootScopeStateAttemptError(LifecycleError):
    """The root scope has no parent record to hold scoped data."""

    def __init__(self) -> None:
        super().__init__("Root scope cannot contain state")


# =============================================================================
# Serialization / Encryption Errors
# =============================================================================

class SerializationError(CrucibleError):
    """A value cannot be converted to its persisted form."""
    pass


class DecryptionError(CrucibleError):
    """Ciphertext failed authentication (wrong password or tampered data)."""

    def __init__(self, scheme: str, reason: str = "authentication failed"):
        super().__init__(
            f"Failed to decrypt {scheme} payload: {reason}",
            {"scheme": scheme}
        )
        self.scheme = scheme


# =============================================================================
# Persistence Errors
# =============================================================================

class PersistenceError(CrucibleError):
    """State store operation failed (read, write, delete).

    Use this for failures where state could not be loaded or saved.
    """

    def __init__(self, operation: str, reason: str, details: dict | None = None):
        super().__init__(
            f"Persistence error during {operation}: {reason}",
            {**(details or {}), "operation": operation, "reason": reason}
        )
        self.operation = operation
        self.reason = reason


class OrphanPruningError(CrucibleError):
    """One or more resources failed to delete during a best-effort sweep."""

    def __init__(self, errors: list[tuple[str, BaseException]]):
        names = ", ".join(fqn for fqn, _ in errors)
        super().__init__(
            f"Failed to delete {len(errors)} resource(s): {names}",
            {"failed": [fqn for fqn, _ in errors]}
        )
        self.errors = errors

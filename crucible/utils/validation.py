"""
Crucible - Identifier validation.
"""

from __future__ import annotations

from crucible.config.constants import RESOURCE_ID_SEPARATOR
from crucible.core.exceptions import InvalidResourceIdError


def validate_resource_id(resource_id: str, qualifier: str = "Resource") -> None:
    """
    Validate a resource or scope identifier.

    ``:`` is reserved as the internal namespace separator.

    Raises:
        InvalidResourceIdError: If the id is empty or contains a separator.
    """
    if not resource_id:
        raise InvalidResourceIdError(resource_id, "cannot be an empty string", qualifier)
    if RESOURCE_ID_SEPARATOR in resource_id:
        raise InvalidResourceIdError(resource_id, "cannot include colons", qualifier)

"""
Crucible Utils - Diffing, validation, logging and console output.
"""

from crucible.utils.diff import deep_equal, diff
from crucible.utils.validation import validate_resource_id

__all__ = [
    "deep_equal",
    "diff",
    "validate_resource_id",
]

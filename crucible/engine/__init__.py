"""
Crucible Engine - Apply and destroy.

``crucible.engine.apply`` and ``crucible.engine.destroy`` import the scope
tree, so only the outcome types are re-exported here.
"""

from crucible.engine.outcome import (
    Continue,
    Destroyed,
    DestroyedSignal,
    Outcome,
    Replace,
    ReplacedSignal,
    invoke_handler,
)

__all__ = [
    "Continue",
    "Destroyed",
    "DestroyedSignal",
    "Outcome",
    "Replace",
    "ReplacedSignal",
    "invoke_handler",
]

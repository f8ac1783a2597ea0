"""
Crucible State - Record model and state stores.
"""

from crucible.state.base import SerializingStateStore, State, StateStore
from crucible.state.filesystem import FileSystemStateStore
from crucible.state.instrumented import InstrumentedStateStore
from crucible.state.memory import MemoryStateStore, reset_memory_state
from crucible.state.sqlite import SqliteStateStore

__all__ = [
    "FileSystemStateStore",
    "InstrumentedStateStore",
    "MemoryStateStore",
    "SerializingStateStore",
    "SqliteStateStore",
    "State",
    "StateStore",
    "reset_memory_state",
]

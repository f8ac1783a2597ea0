"""
Crucible State - Record model and store contract.

One State record is persisted per resource id within a scope. Stores are
bound to the scope they persist for: its chain decides where records live,
and its password decrypts secrets on the way back in.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from crucible.core.types import ResourceStatus
from crucible.resource import Resource
from crucible.serde import deserialize, serialize

if TYPE_CHECKING:
    from crucible.scope import Scope

P = TypeVar("P")
O = TypeVar("O", bound=Resource)


@dataclass
class State(Generic[P, O]):
    """Persisted lifecycle record of one resource."""

    kind: str
    id: str
    fqn: str
    seq: int
    status: ResourceStatus
    data: dict[str, Any] = field(default_factory=dict)
    props: P | None = None
    output: O | None = None
    old_props: P | None = None

    def to_record(self) -> dict[str, Any]:
        """Live-value record with persisted key names (camelCase ``oldProps``)."""
        record: dict[str, Any] = {
            "kind": self.kind,
            "id": self.id,
            "fqn": self.fqn,
            "seq": self.seq,
            "status": str(self.status),
            "data": self.data,
            "output": self.output,
            "props": self.props,
        }
        if self.old_props is not None:
            record["oldProps"] = self.old_props
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> State:
        output = record.get("output")
        if output is not None and not isinstance(output, Resource):
            output = Resource(output)
        return cls(
            kind=record["kind"],
            id=record["id"],
            fqn=record.get("fqn", ""),
            seq=record.get("seq", 0),
            status=ResourceStatus(record["status"]),
            data=dict(record.get("data") or {}),
            props=record.get("props"),
            output=output,
            old_props=record.get("oldProps"),
        )


class StateStore(ABC):
    """
    Persistence contract for one scope's resource records.

    ``init``/``deinit`` are optional hooks; everything else is required.
    Single-writer read-after-write consistency is expected.
    """

    def __init__(self, scope: Scope):
        self.scope = scope

    async def init(self) -> None:
        """Prepare storage (create directories, tables, ...)."""

    async def deinit(self) -> None:
        """Release storage for a scope that has been destroyed."""

    @abstractmethod
    async def list(self) -> list[str]:
        """Ids of every stored record."""

    @abstractmethod
    async def count(self) -> int:
        """Number of stored records."""

    @abstractmethod
    async def get(self, key: str) -> State | None:
        """Record for ``key``, or None."""

    @abstractmethod
    async def set(self, key: str, value: State) -> None:
        """Insert or replace the record for ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the record for ``key`` (no error if absent)."""

    async def get_batch(self, ids: list[str]) -> dict[str, State]:
        """Records for ``ids``; missing ids are left out."""
        states = await asyncio.gather(*(self.get(key) for key in ids))
        return {key: state for key, state in zip(ids, states) if state is not None}

    async def all(self) -> dict[str, State]:
        """Every stored record, by id."""
        return await self.get_batch(await self.list())


class SerializingStateStore(StateStore):
    """
    Base for stores that persist JSON documents.

    Subclasses implement raw document I/O; this class runs every record
    through the serializer (encrypting secrets) and back.
    """

    @abstractmethod
    async def _read(self, key: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def _write(self, key: str, document: dict[str, Any]) -> None:
        ...

    async def get(self, key: str) -> State | None:
        document = await self._read(key)
        if document is None:
            return None
        record = await deserialize(self.scope, document)
        # Older records may lack the id; the key is authoritative
        record.setdefault("id", key)
        return State.from_record(record)

    async def set(self, key: str, value: State) -> None:
        document = await serialize(self.scope, value.to_record())
        await self._write(key, document)

    async def count(self) -> int:
        return len(await self.list())

"""
Crucible - State serialization.

Converts live property trees into JSON-safe documents and back:

- None, bool, int, float, str      -> unchanged
- Secret                           -> {"@secret": <encrypted payload>}
- datetime / date                  -> {"@date": ISO-8601}
- bytes-like / binary stream       -> {"@buffer": base64}
- interned Symbol                  -> {"@symbol": "Symbol(name)"}
- Scope                            -> {"@scope": None} (restored as the reading scope)
- callables                        -> None
- Resource                         -> markers as "Symbol(...)" keys, then user keys
- list / tuple / mapping           -> recursed, order preserved
"""

from __future__ import annotations

import asyncio
import base64
import dataclasses
import io
import json
from collections.abc import Callable, Mapping
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from crucible.core.exceptions import MissingPasswordError, SerializationError
from crucible.core.symbols import RESOURCE_MARKERS, Symbol
from crucible.resource import Resource
from crucible.secrets.encrypt import decrypt_with_key, encrypt
from crucible.secrets.secret import Secret

if TYPE_CHECKING:
    from crucible.scope import Scope

SECRET_TAG = "@secret"
DATE_TAG = "@date"
BUFFER_TAG = "@buffer"
SYMBOL_TAG = "@symbol"
SCOPE_TAG = "@scope"

_TAGS = (SECRET_TAG, DATE_TAG, BUFFER_TAG, SYMBOL_TAG, SCOPE_TAG)


def _is_scope(value: Any) -> bool:
    from crucible.scope import Scope

    return isinstance(value, Scope)


def _symbol_key(symbol: Symbol) -> str:
    if not symbol.is_interned:
        raise SerializationError(
            f"Cannot serialize unique symbol: {symbol.description}",
            {"symbol": str(symbol)},
        )
    return str(symbol)


def _is_binary(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview, io.RawIOBase, io.BufferedIOBase))


def _read_binary(value: Any) -> bytes:
    if isinstance(value, (io.RawIOBase, io.BufferedIOBase)):
        return value.read()
    return bytes(value)


async def _serialize_secret(scope: Scope, value: Secret, encrypt_secrets: bool) -> dict[str, Any]:
    if not scope.password:
        raise MissingPasswordError("serialize")
    cleartext = value.unencrypted
    if not encrypt_secrets:
        return {SECRET_TAG: cleartext}
    if isinstance(cleartext, str):
        return {SECRET_TAG: await encrypt(cleartext, scope.password)}
    return {SECRET_TAG: {"data": await encrypt(json.dumps(cleartext), scope.password)}}


async def serialize(
    scope: Scope,
    value: Any,
    encrypt: bool = True,
    transform: Callable[[Any], Any] | None = None,
) -> Any:
    """
    Convert ``value`` into a JSON-safe document.

    Args:
        scope: Scope providing the encryption password.
        value: Value tree to convert.
        encrypt: False writes secret cleartext; only for in-memory comparisons.
        transform: Applied to every node before conversion.

    Raises:
        MissingPasswordError: If a Secret is found and the scope has no password.
        SerializationError: For unique symbols and unsupported objects.
    """

    async def walk(node: Any) -> Any:
        if transform is not None:
            node = transform(node)

        if node is None or isinstance(node, (bool, int, float, str)):
            return node
        if isinstance(node, Secret):
            return await _serialize_secret(scope, node, encrypt)
        if isinstance(node, (datetime, date)):
            return {DATE_TAG: node.isoformat()}
        if _is_binary(node):
            data = await asyncio.to_thread(_read_binary, node)
            return {BUFFER_TAG: base64.b64encode(data).decode("ascii")}
        if isinstance(node, Symbol):
            return {SYMBOL_TAG: _symbol_key(node)}
        if _is_scope(node):
            return {SCOPE_TAG: None}
        if isinstance(node, Resource):
            keys = [*node.markers.keys(), *node.keys()]
            values = [*node.markers.values(), *node.values()]
            return await _walk_mapping(keys, values)
        if isinstance(node, Mapping):
            return await _walk_mapping(list(node.keys()), list(node.values()))
        if isinstance(node, (list, tuple)):
            return list(await asyncio.gather(*(walk(item) for item in node)))
        if isinstance(node, BaseModel):
            return await walk(node.model_dump())
        if dataclasses.is_dataclass(node) and not isinstance(node, type):
            return await walk({f.name: getattr(node, f.name) for f in dataclasses.fields(node)})
        if callable(node):
            return None
        raise SerializationError(
            f"Cannot serialize value of type {type(node).__name__}",
            {"type": type(node).__name__},
        )

    async def _walk_mapping(keys: list[Any], values: list[Any]) -> dict[str, Any]:
        names = [_symbol_key(k) if isinstance(k, Symbol) else k for k in keys]
        converted = await asyncio.gather(*(walk(v) for v in values))
        return dict(zip(names, converted))

    return await walk(value)


async def _deserialize_secret(scope: Scope, payload: Any) -> Secret:
    if not scope.password:
        raise MissingPasswordError("deserialize")
    if isinstance(payload, dict) and "data" in payload and "ciphertext" not in payload:
        return Secret(json.loads(await decrypt_with_key(payload["data"], scope.password)))
    return Secret(await decrypt_with_key(payload, scope.password))


def _parse_date(text: str) -> date:
    if "T" in text:
        return datetime.fromisoformat(text)
    return date.fromisoformat(text)


async def deserialize(
    scope: Scope,
    value: Any,
    transform: Callable[[Any], Any] | None = None,
) -> Any:
    """
    Restore a document produced by ``serialize``.

    ``{"@scope": None}`` becomes ``scope`` itself: scopes are never persisted,
    the reader's scope takes their place. ``transform`` may return a
    replacement for any node; returning None keeps the node.

    Raises:
        MissingPasswordError: If a secret is found and the scope has no password.
        DecryptionError: If the password is wrong.
    """

    async def walk(node: Any) -> Any:
        if transform is not None:
            replacement = transform(node)
            if replacement is not None:
                return replacement

        if isinstance(node, list):
            return list(await asyncio.gather(*(walk(item) for item in node)))
        if not isinstance(node, dict):
            return node

        if len(node) == 1:
            tag = next(iter(node))
            if tag in _TAGS:
                return await _untag(tag, node[tag])

        keys = [Symbol.parse(key) or key if isinstance(key, str) else key for key in node]
        values = await asyncio.gather(*(walk(v) for v in node.values()))

        markers = {k: v for k, v in zip(keys, values) if k in RESOURCE_MARKERS}
        if markers:
            data = {k: v for k, v in zip(keys, values) if k not in RESOURCE_MARKERS}
            return Resource(data, markers)
        return dict(zip(keys, values))

    async def _untag(tag: str, payload: Any) -> Any:
        if tag == SECRET_TAG:
            return await _deserialize_secret(scope, payload)
        if tag == DATE_TAG:
            return _parse_date(payload)
        if tag == BUFFER_TAG:
            return base64.b64decode(payload)
        if tag == SYMBOL_TAG:
            return Symbol.parse(payload)
        return scope

    return await walk(value)

"""
Crucible Providers - random::String.

Cryptographically secure random strings for API keys, tokens and
passwords. The value is wrapped in a Secret so it is encrypted in state
and masked in logs.

Usage:
    api_key = await RandomString("api-key")
    token = await RandomString("session-token", {"length": 48, "encoding": "base64"})
"""

from __future__ import annotations

import base64
import secrets
from typing import Any, Literal

from pydantic import BaseModel, Field

from crucible.context import Context
from crucible.core.types import LifecyclePhase
from crucible.resource import Resource, resource
from crucible.secrets.secret import secret


class RandomStringProps(BaseModel):
    """Properties of a random string."""

    length: int = Field(default=32, gt=0, description="Number of random bytes")
    encoding: Literal["hex", "base64"] = Field(default="hex", description="Output encoding")


def generate(length: int, encoding: str) -> str:
    raw = secrets.token_bytes(length)
    if encoding == "base64":
        return base64.b64encode(raw).decode("ascii")
    return raw.hex()


@resource("random::String")
async def RandomString(ctx: Context, id: str, props: dict[str, Any] | None) -> Resource:
    """Generate a random string once; regenerate only when length or encoding change."""
    if ctx.phase == LifecyclePhase.DELETE:
        ctx.destroy()

    wanted = RandomStringProps.model_validate(props or {})

    if ctx.phase == LifecyclePhase.UPDATE and ctx.output is not None:
        previous = RandomStringProps.model_validate(ctx.props or {})
        if previous == wanted:
            return ctx.output

    return ctx.create(
        {
            "length": wanted.length,
            "encoding": wanted.encoding,
            "value": secret(generate(wanted.length, wanted.encoding)),
        }
    )

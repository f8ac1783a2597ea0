"""
Tests for the read phase.

In the read phase declarations return stored outputs without touching
infrastructure; apps excluded by app selection wait for the owning app.
"""

import asyncio

import pytest

from crucible.core.exceptions import ResourceNotFoundError, StateConsistencyError
from crucible.core.types import ResourceStatus


class TestReadPhase:
    """Tests for reading stored outputs."""

    @pytest.mark.asyncio
    async def test_returns_stored_output(self, make_stage, box, events):
        """Declarations return what the last up run stored."""
        async with make_stage():
            await box("a", {"value": 1})

        async with make_stage(phase="read"):
            output = await box("a", {"value": 99})

        assert output["value"] == 1
        assert events == ["create:a:1"]

    @pytest.mark.asyncio
    async def test_missing_resource(self, make_stage, box):
        """Reading a resource that was never applied fails."""
        stage = make_stage(phase="read")
        with pytest.raises(ResourceNotFoundError):
            await box("missing", {"value": 1}, scope=stage)

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_unselected_app_waits_for_owner(self, make_stage, box):
        """An unselected app polls until the owner stores matching props."""
        reader = make_stage(phase="read", is_selected=False)
        writer = make_stage()

        async def write_later():
            await asyncio.sleep(0.2)
            await box("a", {"value": 7}, scope=writer)

        output, _ = await asyncio.gather(
            box("a", {"value": 7}, scope=reader),
            write_later(),
        )
        assert output["value"] == 7

    @pytest.mark.asyncio
    async def test_unselected_app_sees_deletion(self, make_stage, box):
        """A record being deleted cannot be read."""
        async with make_stage():
            await box("a", {"value": 1})

        writer = make_stage()
        state = await writer.state.get("a")
        state.status = ResourceStatus.DELETING
        await writer.state.set("a", state)

        with pytest.raises(StateConsistencyError):
            await box("a", {"value": 1}, scope=make_stage(phase="read", is_selected=False))

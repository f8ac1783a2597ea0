"""
Tests for the scope tree.
"""

import asyncio

import pytest

from crucible.app import run
from crucible.config.constants import SCOPE_KIND
from crucible.core.exceptions import (
    InvalidResourceIdError,
    LifecycleError,
    ResourceKindConflictError,
    RootScopeStateAttemptError,
)
from crucible.core.types import DestroyStrategy, Phase
from crucible.scope import Scope
from crucible.state.memory import MemoryStateStore


class TestScopeIdentity:
    """Tests for naming and options."""

    def test_chain_and_fqn(self, make_stage):
        """The chain runs from the app down to the scope."""
        stage = make_stage()
        nested = Scope("backend", parent=stage)
        assert nested.chain == ["app", "test", "backend"]
        assert nested.fqn("db") == "app/test/backend/db"
        assert nested.root is stage.root
        assert nested.app_name == "app"

    def test_seq_is_monotonic(self, make_stage):
        """seq() never repeats within a scope."""
        stage = make_stage()
        assert [stage.seq() for _ in range(3)] == [0, 1, 2]

    def test_options_inherit_from_parent(self, make_stage):
        """Children take unset options from their parent."""
        stage = make_stage(force=True, destroy_strategy="parallel")
        nested = Scope("n", parent=stage)
        assert nested.force is True
        assert nested.quiet is True
        assert nested.password == stage.password
        assert nested.destroy_strategy == DestroyStrategy.PARALLEL
        assert nested.state_store is MemoryStateStore

    def test_child_overrides(self, make_stage):
        """Explicit options win over inherited ones."""
        nested = Scope("n", parent=make_stage(), quiet=False)
        assert nested.quiet is False

    def test_phase_is_required(self):
        """A root scope without phase cannot be built."""
        with pytest.raises(LifecycleError, match="Phase is required"):
            Scope("app", state_store=MemoryStateStore)

    def test_child_name_is_validated(self, make_stage):
        """Colons are not allowed in scope names."""
        with pytest.raises(InvalidResourceIdError):
            Scope("a:b", parent=make_stage())

    def test_default_stage(self, monkeypatch, tmp_path):
        """Without a stage option the environment decides."""
        monkeypatch.setenv("CRUCIBLE_STAGE", "qa")
        root = Scope("app", phase=Phase.UP, root_dir=tmp_path, state_store=MemoryStateStore)
        assert root.stage == "qa"

    def test_create_physical_name(self, make_stage):
        """Physical names combine app, nested scopes, id and stage."""
        stage = make_stage(stage="prod")
        nested = Scope("api", parent=stage)
        assert stage.create_physical_name("bucket") == "app-bucket-prod"
        assert nested.create_physical_name("my.bucket") == "app-api-my-bucket-prod"
        assert nested.create_physical_name("b", delimiter="_") == "app_api_b_prod"


class TestAmbientScope:
    """Tests for the task-local current scope."""

    @pytest.mark.asyncio
    async def test_current_outside_scope(self):
        """current() fails when no scope is active."""
        assert Scope.get_current() is None
        with pytest.raises(LifecycleError):
            Scope.current()

    @pytest.mark.asyncio
    async def test_run_sets_current(self, make_stage):
        """run() makes the scope current only while fn runs."""
        stage = make_stage()

        async def inside(scope):
            return Scope.current()

        assert await stage.run(inside) is stage
        assert Scope.get_current() is None

    @pytest.mark.asyncio
    async def test_current_is_task_local(self, make_stage):
        """Concurrent tasks keep their own current scope."""
        stage = make_stage()
        dev = Scope("dev", parent=stage)
        prod = Scope("prod", parent=stage)

        async def report(scope):
            await asyncio.sleep(0.01)
            return Scope.current()

        results = await asyncio.gather(dev.run(report), prod.run(report))
        assert results == [dev, prod]


class TestScopedData:
    """Tests for scope get/set/delete."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self, make_stage):
        """Values persist in the parent's record for the scope."""
        stage = make_stage()
        await stage.set("answer", 42)
        assert await stage.get("answer") == 42
        assert await make_stage().get("answer") == 42

        await stage.delete("answer")
        assert await stage.get("answer") is None

    @pytest.mark.asyncio
    async def test_stage_record_created_lazily(self, make_stage):
        """The first write creates the stage record in the root store."""
        stage = make_stage()
        assert await stage.root.state.get("test") is None
        await stage.set("k", "v")
        record = await stage.root.state.get("test")
        assert record.kind == SCOPE_KIND
        assert record.data == {"k": "v"}

    @pytest.mark.asyncio
    async def test_root_has_no_record(self, make_stage):
        """The root scope cannot hold scoped data."""
        root = make_stage().root
        with pytest.raises(RootScopeStateAttemptError):
            await root.get("k")

    @pytest.mark.asyncio
    async def test_concurrent_writes_are_serialized(self, make_stage):
        """Parallel read-modify-write cycles do not lose updates."""
        stage = make_stage()
        await stage.set("items", [])

        async def add(item):
            async def append(state, persist):
                state.data["items"] = [*state.data["items"], item]
                await persist(state)

            await stage._with_scope_state(append)

        await asyncio.gather(*(add(i) for i in range(5)))
        assert sorted(await stage.get("items")) == [0, 1, 2, 3, 4]


class TestRunScope:
    """Tests for run() groupings."""

    @pytest.mark.asyncio
    async def test_run_records_scope(self, make_stage):
        """A run() grouping is recorded in its parent with the scope kind."""
        stage = make_stage()

        async def body(scope):
            assert scope.chain == ["app", "test", "backend"]
            return "done"

        async with stage:
            assert await run("backend", body) == "done"
            record = await stage.state.get("backend")
            assert record.kind == SCOPE_KIND
            assert "backend" in stage.resources

    @pytest.mark.asyncio
    async def test_run_conflicts_with_resource(self, make_stage, box):
        """A run() name already used by a resource is rejected."""
        stage = make_stage()

        async def body(scope):
            return None

        async with stage:
            await box("shared", {"value": 1})
            with pytest.raises(ResourceKindConflictError):
                await run("shared", body)
            stage.skip()

    @pytest.mark.asyncio
    async def test_run_error_fails_child(self, make_stage):
        """Errors inside run() mark the child scope as failed."""
        stage = make_stage()
        children = []

        async def body(scope):
            children.append(scope)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            await run("broken", body, scope=stage)
        assert children[0].is_errored


class TestFinalize:
    """Tests for finalize and its hooks."""

    @pytest.mark.asyncio
    async def test_deferred_work_runs_at_finalize(self, make_stage):
        """defer() resolves once the scope finalizes."""
        stage = make_stage()
        calls = []

        async def work():
            calls.append(Scope.current())
            return "result"

        future = stage.defer(work)
        assert calls == []
        await stage.finalize()
        assert await future == "result"
        assert calls == [stage]

    @pytest.mark.asyncio
    async def test_deferred_failure_reaches_future(self, make_stage):
        """A failing deferred function rejects its future."""
        stage = make_stage()

        async def work():
            raise RuntimeError("late failure")

        future = stage.defer(work)
        await stage.finalize()
        with pytest.raises(RuntimeError, match="late failure"):
            await future

    @pytest.mark.asyncio
    async def test_read_phase_finalize_does_nothing(self, make_stage, box, events):
        """Read-phase scopes never prune."""
        async with make_stage():
            await box("a", {"value": 1})

        await make_stage(phase="read").finalize()
        assert events == ["create:a:1"]

    @pytest.mark.asyncio
    async def test_cleanup_hooks(self, make_stage):
        """on_cleanup hooks registered anywhere run from the root."""
        stage = make_stage()
        calls = []

        async def hook():
            calls.append("hook")

        async def failing():
            raise RuntimeError("ignored")

        Scope("n", parent=stage).on_cleanup(hook)
        stage.on_cleanup(failing)
        await stage.cleanup()
        assert calls == []

        await stage.root.cleanup()
        assert calls == ["hook"]

    @pytest.mark.asyncio
    async def test_finalize_leaves_cleanup_hooks(self, make_stage):
        """Finalizing a scope does not run its cleanup hooks."""
        calls = []

        async def hook():
            calls.append("hook")

        stage = make_stage()
        stage.on_cleanup(hook)
        async with stage:
            pass
        assert calls == []

        await stage.root.cleanup()
        assert calls == ["hook"]

    def test_clear(self, make_stage):
        """clear() forgets children and declarations."""
        stage = make_stage()
        Scope("n", parent=stage)
        stage.clear()
        assert stage.children == {}
        assert stage.resources == {}

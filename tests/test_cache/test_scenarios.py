"""End-to-end read/write flows through accessor and dispatcher."""

import asyncio
from typing import Any

import fakeredis
import pytest

from src.cache.accessor import CacheAccessor
from src.cache.invalidation import InvalidationDispatcher, Mutation
from src.cache.serializer import encode


class FakeBoardStore:
    """Minimal system of record for a two-column board."""

    def __init__(self) -> None:
        self.columns: dict[str, list[str]] = {"todo": ["t1", "t2"], "done": ["t3"]}
        self.board_loads = 0

    async def load_board(self) -> list[dict[str, Any]]:
        self.board_loads += 1
        return [
            {"id": column, "tasks": [{"id": task} for task in tasks]}
            for column, tasks in self.columns.items()
        ]

    async def move_task(self, task_id: str, to_column: str) -> dict[str, str]:
        for tasks in self.columns.values():
            if task_id in tasks:
                tasks.remove(task_id)
        self.columns[to_column].append(task_id)
        return {"id": task_id, "column": to_column}


class TestBoardFlow:
    """A board read, a move, and the read after it."""

    @pytest.mark.asyncio
    async def test_read_after_move_sees_move(
        self,
        accessor: CacheAccessor,
        dispatcher: InvalidationDispatcher,
        fake_redis: fakeredis.FakeAsyncRedis,
    ) -> None:
        """A board read after a move reflects the move."""
        store = FakeBoardStore()

        before = await accessor.get_board("P1", "T1", store.load_board)
        await accessor.drain()
        assert await fake_redis.exists("board:P1:T1") == 1

        cached = await accessor.get_board("P1", "T1", store.load_board)
        assert cached == before
        assert store.board_loads == 1

        await dispatcher.run_mutation(
            Mutation.TASK_MOVED,
            lambda: store.move_task("t1", "done"),
            project_id="P1",
            team_id="T1",
            task_id="t1",
        )
        assert await fake_redis.exists("board:P1:T1") == 0

        after = await accessor.get_board("P1", "T1", store.load_board)
        assert store.board_loads == 2
        assert after == [
            {"id": "todo", "tasks": [{"id": "t2"}]},
            {"id": "done", "tasks": [{"id": "t3"}, {"id": "t1"}]},
        ]

    @pytest.mark.asyncio
    async def test_move_clears_every_team_board(
        self,
        accessor: CacheAccessor,
        dispatcher: InvalidationDispatcher,
        fake_redis: fakeredis.FakeAsyncRedis,
    ) -> None:
        """Boards of other teams on the same project are cleared too."""
        store = FakeBoardStore()
        await accessor.get_board("P1", "T1", store.load_board)
        await accessor.get_board("P1", None, store.load_board)
        await accessor.get_board("P2", "T1", store.load_board)
        await accessor.drain()

        await dispatcher.run_mutation(
            Mutation.TASK_MOVED, lambda: store.move_task("t2", "done"), project_id="P1"
        )

        assert await fake_redis.exists("board:P1:T1") == 0
        assert await fake_redis.exists("board:P1:no-team") == 0
        assert await fake_redis.exists("board:P2:T1") == 1


class TestDashboardFlow:
    """Dashboard caching with partial snapshots."""

    @pytest.mark.asyncio
    async def test_partial_dashboard_is_replaced(
        self, accessor: CacheAccessor, fake_redis: fakeredis.FakeAsyncRedis
    ) -> None:
        """A dashboard cached before categories loaded is rebuilt."""
        partial = {"projects": [{"id": "P1", "categories": []}], "shifts": [{"id": "s1"}]}
        complete = {
            "projects": [
                {
                    "id": "P1",
                    "categories": [{"id": "k1", "options": [{"id": "o1", "label": "High"}]}],
                }
            ],
            "shifts": [{"id": "s1"}],
        }
        snapshots = [partial, complete]
        loads = 0

        async def load_dashboard() -> dict[str, Any]:
            nonlocal loads
            loads += 1
            return snapshots[loads - 1]

        first = await accessor.get_dashboard("U1", load_dashboard)
        await accessor.drain()
        assert first == partial

        second = await accessor.get_dashboard("U1", load_dashboard)
        await accessor.drain()
        assert second == complete
        assert loads == 2

        third = await accessor.get_dashboard("U1", load_dashboard)
        assert third == complete
        assert loads == 2


class TestUndrainedFlows:
    """Flows where background writes are still pending between steps."""

    @pytest.mark.asyncio
    async def test_move_before_write_lands(
        self,
        accessor: CacheAccessor,
        dispatcher: InvalidationDispatcher,
        fake_redis: fakeredis.FakeAsyncRedis,
    ) -> None:
        """A board loaded before a move is not cached after the move."""
        store = FakeBoardStore()

        before = await accessor.get_board("P1", "T1", store.load_board)
        await dispatcher.run_mutation(
            Mutation.TASK_MOVED,
            lambda: store.move_task("t1", "done"),
            project_id="P1",
            team_id="T1",
            task_id="t1",
        )
        await accessor.drain()

        assert await fake_redis.exists("board:P1:T1") == 0

        after = await accessor.get_board("P1", "T1", store.load_board)
        assert store.board_loads == 2
        assert after != before
        assert after == [
            {"id": "todo", "tasks": [{"id": "t2"}]},
            {"id": "done", "tasks": [{"id": "t3"}, {"id": "t1"}]},
        ]

    @pytest.mark.asyncio
    async def test_move_while_loading(
        self,
        accessor: CacheAccessor,
        dispatcher: InvalidationDispatcher,
        fake_redis: fakeredis.FakeAsyncRedis,
    ) -> None:
        """A move that lands while the board is loading wins over the load."""
        store = FakeBoardStore()
        loading = asyncio.Event()
        moved = asyncio.Event()

        async def slow_load() -> list[dict[str, Any]]:
            board = await store.load_board()
            loading.set()
            await moved.wait()
            return board

        read = asyncio.create_task(accessor.get_board("P1", "T1", slow_load))
        await loading.wait()
        await dispatcher.run_mutation(
            Mutation.TASK_MOVED, lambda: store.move_task("t1", "done"), project_id="P1"
        )
        moved.set()
        await read
        await accessor.drain()

        assert await fake_redis.exists("board:P1:T1") == 0

    @pytest.mark.asyncio
    async def test_caller_changes_do_not_reach_cache(
        self, accessor: CacheAccessor, fake_redis: fakeredis.FakeAsyncRedis
    ) -> None:
        """Editing a returned board before the write lands leaves the cache intact."""
        store = FakeBoardStore()

        board = await accessor.get_board("P1", "T1", store.load_board)
        expected = encode(board)
        board[0]["tasks"].append({"id": "scratch"})
        await accessor.drain()

        assert await fake_redis.get("board:P1:T1") == expected
        cached = await accessor.get_board("P1", "T1", store.load_board)
        assert {"id": "scratch"} not in cached[0]["tasks"]
        assert store.board_loads == 1

    @pytest.mark.asyncio
    async def test_flush_before_write_lands(
        self,
        accessor: CacheAccessor,
        dispatcher: InvalidationDispatcher,
        fake_redis: fakeredis.FakeAsyncRedis,
    ) -> None:
        """A full flush also cancels pending writes."""
        store = FakeBoardStore()

        await accessor.get_board("P1", "T1", store.load_board)
        assert await dispatcher.flush_all() is True
        await accessor.drain()

        assert await fake_redis.dbsize() == 0

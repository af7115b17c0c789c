"""Cache-aside accessors for expensive read views.

This module provides:
- get_or_load: the generic cache-aside read used by every resource type
- Thin per-resource wrappers (board, categories, user projects, dashboard...)
- Shape checks that reject degenerate cached snapshots

Cache population after a load runs as a detached task and never delays the
caller. The value is serialized before the caller gets it back, so later
changes the caller makes to the result never reach the cache. Each miss
holds a write ticket from before its load until its write completes; an
invalidation covering the key fences the ticket, so a value loaded before a
mutation is never stored after it. Concurrent misses on the same key each
call their loader; the last write wins.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar, cast

import structlog

from src.cache.client import CacheBackendClient
from src.cache.errors import CacheDecodeError
from src.cache.keys import ALL_DATES, NO_TEAM, ResourceType, build_key, get_descriptor
from src.cache.metrics import CacheMetrics
from src.cache.serializer import decode, encode
from src.cache.writes import PendingWrites, WriteTicket

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Loader = Callable[[], Awaitable[T]]
ShapeCheck = Callable[[Any], bool]
TTLResolver = Callable[[ResourceType], int]


def _default_ttl(resource: ResourceType) -> int:
    return get_descriptor(resource).ttl_seconds


def is_cacheable(value: Any) -> bool:
    """Whether a loader result is worth caching.

    None and empty collections are returned to the caller but not stored.
    """
    if value is None:
        return False
    if isinstance(value, list | tuple | dict | set | str):
        return len(value) > 0
    return True


def has_categories_with_options(projects: Any) -> bool:
    """Check that a project list carries its nested category options.

    A list is complete when at least one project has a non-empty
    ``categories`` list holding a category with non-empty ``options``.
    """
    if not isinstance(projects, list):
        return False
    for project in projects:
        if not isinstance(project, dict):
            continue
        categories = project.get("categories")
        if not isinstance(categories, list):
            continue
        for category in categories:
            if isinstance(category, dict) and category.get("options"):
                return True
    return False


def is_complete_dashboard(dashboard: Any) -> bool:
    """Check that a cached dashboard's projects carry category options."""
    if not isinstance(dashboard, dict):
        return False
    return has_categories_with_options(dashboard.get("projects"))


class CacheAccessor:
    """Cache-aside reads over a CacheBackendClient.

    Example:
        accessor = CacheAccessor(client)

        board = await accessor.get_board(
            project_id,
            team_id,
            loader=lambda: build_board(project_id, team_id),
        )
    """

    def __init__(
        self,
        client: CacheBackendClient,
        ttl_resolver: TTLResolver | None = None,
        metrics: CacheMetrics | None = None,
        pending: PendingWrites | None = None,
    ) -> None:
        """Initialize the accessor.

        Args:
            client: Shared backend client.
            ttl_resolver: Maps a resource type to its TTL in seconds.
                Defaults to the static policy table.
            metrics: Metrics sink shared with the dispatcher.
            pending: Write registry shared with the dispatcher. Without a
                shared registry, invalidations cannot fence this
                accessor's writes.
        """
        self.client = client
        self._ttl_resolver = ttl_resolver or _default_ttl
        self.metrics = metrics or CacheMetrics()
        self.pending = pending if pending is not None else PendingWrites()

    @property
    def pending_writes(self) -> int:
        """Number of background cache writes still in flight."""
        return len(self.pending)

    async def _read(self, key: str, resource: ResourceType) -> tuple[bool, Any]:
        """Read and decode a key.

        Returns:
            (found, value). ``found`` is False on miss, unavailability or an
            undecodable payload.
        """
        start = time.monotonic()
        data = await self.client.get(key)
        if data is None:
            return False, None

        try:
            value = decode(data)
        except CacheDecodeError as e:
            await self.metrics.record_error()
            logger.warning("cache_decode_error", key=key, resource=resource.value, error=str(e))
            return False, None

        latency_ms = (time.monotonic() - start) * 1000
        await self.metrics.record_hit(latency_ms)
        return True, value

    async def get_or_load(
        self,
        resource: ResourceType,
        key_parts: Sequence[Any],
        loader: Loader[T],
        *,
        validate: ShapeCheck | None = None,
    ) -> T:
        """Get a read view from cache, or load it and cache it.

        Args:
            resource: Resource type, which fixes key prefix and TTL.
            key_parts: Identifying parts in the resource's key order.
            loader: Async callable fetching the value from the system of
                record. Its exceptions propagate unchanged.
            validate: Optional shape check a cached value must pass. A value
                that fails is deleted and reloaded.

        Returns:
            Cached or freshly loaded value.
        """
        key = build_key(resource, *key_parts)
        ticket = self.pending.reserve(key)
        try:
            found, cached = await self._read(key, resource)
            if found:
                if validate is None or validate(cached):
                    logger.debug("cache_hit", key=key, resource=resource.value)
                    return cast(T, cached)

                await self.metrics.record_rejected()
                logger.info("cache_shape_rejected", key=key, resource=resource.value)
                await self.client.delete(key)

            await self.metrics.record_miss()
            logger.debug("cache_miss", key=key, resource=resource.value)

            start = time.monotonic()
            result = await loader()
            load_ms = (time.monotonic() - start) * 1000
            await self.metrics.record_load(load_ms)

            if is_cacheable(result):
                await self._schedule_write(ticket, result, self._ttl_resolver(resource))

            logger.debug("cache_loaded", key=key, load_time_ms=round(load_ms, 2))
            return result
        finally:
            if ticket.task is None:
                self.pending.release(ticket)

    async def _schedule_write(self, ticket: WriteTicket, value: Any, ttl: int) -> None:
        """Serialize a loaded value and store it in a detached task."""
        if ticket.stale:
            logger.debug("cache_populate_fenced", key=ticket.key)
            return

        try:
            payload = encode(value)
        except (TypeError, ValueError) as e:
            await self.metrics.record_write_failure()
            logger.warning("cache_encode_error", key=ticket.key, error=str(e))
            return

        task = asyncio.create_task(self._populate(ticket, payload, ttl))
        self.pending.attach(ticket, task)

    async def _populate(self, ticket: WriteTicket, payload: bytes, ttl: int) -> bool:
        if ticket.stale:
            logger.debug("cache_populate_fenced", key=ticket.key)
            return False

        applied = await self.client.set_with_ttl(ticket.key, payload, ttl)
        if not applied:
            await self.metrics.record_write_failure()
            logger.warning("cache_populate_skipped", key=ticket.key)
        return applied

    async def drain(self) -> None:
        """Wait for in-flight background writes to finish."""
        await self.pending.drain()

    # ------------------------------------------------------------------
    # Kanban views
    # ------------------------------------------------------------------

    async def get_board(
        self, project_id: Any, team_id: Any | None, loader: Loader[T]
    ) -> T:
        """Columns-with-tasks for a project board, optionally per team."""
        team = team_id if team_id else NO_TEAM
        return await self.get_or_load(ResourceType.BOARD, (project_id, team), loader)

    async def get_categories(self, project_id: Any, loader: Loader[T]) -> T:
        """Categories-with-options for a project."""
        return await self.get_or_load(ResourceType.CATEGORIES, (project_id,), loader)

    async def get_columns(self, project_id: Any, loader: Loader[T]) -> T:
        """Column definitions for a project."""
        return await self.get_or_load(ResourceType.COLUMN_DATA, (project_id,), loader)

    async def get_task_details(self, project_id: Any, task_id: Any, loader: Loader[T]) -> T:
        """Full detail view of a single task."""
        return await self.get_or_load(
            ResourceType.TASK_DETAILS, (project_id, task_id), loader
        )

    # ------------------------------------------------------------------
    # User and team views
    # ------------------------------------------------------------------

    async def get_user_teams(self, user_id: Any, loader: Loader[T]) -> T:
        """Teams a user belongs to."""
        return await self.get_or_load(ResourceType.USER_TEAMS, (user_id,), loader)

    async def get_user_shifts(
        self, user_id: Any, loader: Loader[T], date: Any | None = None
    ) -> T:
        """Shifts for a user, for one date or for all dates."""
        return await self.get_or_load(
            ResourceType.USER_SHIFTS, (user_id, date or ALL_DATES), loader
        )

    async def get_user_projects(self, user_id: Any, loader: Loader[T]) -> T:
        """Projects a user can access, with categories and options.

        A cached list without any category options is a partial snapshot
        and is discarded.
        """
        return await self.get_or_load(
            ResourceType.USER_PROJECTS,
            (user_id,),
            loader,
            validate=has_categories_with_options,
        )

    async def get_team_members(self, team_id: Any, loader: Loader[T]) -> T:
        """Members of a team."""
        return await self.get_or_load(ResourceType.TEAM_MEMBERS, (team_id,), loader)

    async def get_team_shifts(
        self, team_id: Any, loader: Loader[T], date: Any | None = None
    ) -> T:
        """Shifts for a team, for one date or for all dates."""
        return await self.get_or_load(
            ResourceType.TEAM_SHIFTS, (team_id, date or ALL_DATES), loader
        )

    async def get_project_teams(self, project_id: Any, loader: Loader[T]) -> T:
        """Teams working on a project."""
        return await self.get_or_load(ResourceType.PROJECT_TEAMS, (project_id,), loader)

    async def get_dashboard(self, user_id: Any, loader: Loader[T]) -> T:
        """A user's dashboard aggregate.

        The aggregate is assembled from several sub-loads; a cached copy
        whose projects lack category options is discarded.
        """
        return await self.get_or_load(
            ResourceType.DASHBOARD,
            (user_id,),
            loader,
            validate=is_complete_dashboard,
        )

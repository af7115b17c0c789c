"""Invalidation of cached read views after writes.

This module provides:
- invalidate: direct delete for a full key, pattern delete for a key family
- dispatch: maps a mutation to every cached view it makes stale
- run_mutation: performs a write, then invalidates before returning
- Administrative helpers for forcing a project, user or team refresh

Every delete first fences pending accessor writes for the keys it targets,
so a value loaded before the mutation cannot be stored after its
invalidation.

Invalidation never fails the mutation that triggered it. When the backend
is unavailable the failure is logged and the TTL bounds staleness.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import structlog

from src.cache.client import CacheBackendClient
from src.cache.errors import UnsafePatternError
from src.cache.keys import (
    ResourceType,
    build_key,
    build_pattern,
    get_descriptor,
    is_known_pattern,
)
from src.cache.metrics import CacheMetrics
from src.cache.writes import PendingWrites, matcher_for

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class Mutation(Enum):
    """Writes that make cached views stale."""

    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_MOVED = "task_moved"
    TASK_DELETED = "task_deleted"
    COLUMN_CREATED = "column_created"
    COLUMN_UPDATED = "column_updated"
    COLUMN_DELETED = "column_deleted"
    CATEGORY_CHANGED = "category_changed"
    TEAM_MEMBERSHIP_CHANGED = "team_membership_changed"
    SHIFT_CHANGED = "shift_changed"
    PROJECT_CHANGED = "project_changed"


_TASK_MUTATIONS = frozenset(
    {Mutation.TASK_CREATED, Mutation.TASK_UPDATED, Mutation.TASK_MOVED, Mutation.TASK_DELETED}
)
_COLUMN_MUTATIONS = frozenset(
    {Mutation.COLUMN_CREATED, Mutation.COLUMN_UPDATED, Mutation.COLUMN_DELETED}
)


@dataclass(frozen=True)
class InvalidationTarget:
    """A resource and the leading key parts to invalidate.

    A target naming every key part removes exactly one key; fewer parts
    remove the whole family sharing them.
    """

    resource: ResourceType
    scope: tuple[Any, ...] = ()

    @property
    def is_exact(self) -> bool:
        """Whether the target names a single key."""
        return len(self.scope) == get_descriptor(self.resource).arity

    def render(self) -> str:
        """Key or glob pattern this target resolves to."""
        if self.is_exact:
            return build_key(self.resource, *self.scope)
        return build_pattern(self.resource, *self.scope)


def targets_for(
    mutation: Mutation,
    *,
    project_id: Any | None = None,
    team_id: Any | None = None,
    user_id: Any | None = None,
    task_id: Any | None = None,
) -> list[InvalidationTarget]:
    """List the cached views a mutation makes stale.

    Targets that need an id which was not supplied are skipped.
    """
    targets: list[InvalidationTarget] = []

    def add(resource: ResourceType, *scope: Any) -> None:
        if all(part is not None for part in scope):
            targets.append(InvalidationTarget(resource, tuple(scope)))

    if mutation in _TASK_MUTATIONS:
        add(ResourceType.BOARD, project_id)
        if task_id is not None:
            add(ResourceType.TASK_DETAILS, project_id, task_id)
        else:
            add(ResourceType.TASK_DETAILS, project_id)

    elif mutation in _COLUMN_MUTATIONS:
        add(ResourceType.BOARD, project_id)
        add(ResourceType.COLUMN_DATA, project_id)

    elif mutation is Mutation.CATEGORY_CHANGED:
        add(ResourceType.CATEGORIES, project_id)
        # Every user's project list embeds categories
        add(ResourceType.USER_PROJECTS)
        add(ResourceType.DASHBOARD)

    elif mutation is Mutation.TEAM_MEMBERSHIP_CHANGED:
        add(ResourceType.TEAM_MEMBERS, team_id)
        add(ResourceType.TEAM_SHIFTS, team_id)
        add(ResourceType.USER_TEAMS, user_id)
        add(ResourceType.USER_PROJECTS, user_id)
        add(ResourceType.USER_SESSION, user_id)
        add(ResourceType.DASHBOARD, user_id)
        add(ResourceType.PROJECT_TEAMS, project_id)

    elif mutation is Mutation.SHIFT_CHANGED:
        add(ResourceType.USER_SHIFTS, user_id)
        add(ResourceType.TEAM_SHIFTS, team_id)
        add(ResourceType.DASHBOARD, user_id)

    elif mutation is Mutation.PROJECT_CHANGED:
        add(ResourceType.BOARD, project_id)
        add(ResourceType.CATEGORIES, project_id)
        add(ResourceType.COLUMN_DATA, project_id)
        add(ResourceType.PROJECT_TEAMS, project_id)
        add(ResourceType.TASK_DETAILS, project_id)
        add(ResourceType.USER_PROJECTS)
        add(ResourceType.DASHBOARD)

    return targets


class InvalidationDispatcher:
    """Removes stale cache entries after system-of-record writes.

    Example:
        dispatcher = InvalidationDispatcher(client)

        moved = await dispatcher.run_mutation(
            Mutation.TASK_MOVED,
            lambda: repo.move_task(task_id, column_id),
            project_id=project_id,
            team_id=team_id,
            task_id=task_id,
        )
    """

    def __init__(
        self,
        client: CacheBackendClient,
        metrics: CacheMetrics | None = None,
        pending: PendingWrites | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            client: Shared backend client.
            metrics: Metrics sink shared with the accessor.
            pending: Write registry shared with the accessor.
        """
        self.client = client
        self.metrics = metrics or CacheMetrics()
        self.pending = pending if pending is not None else PendingWrites()

    async def invalidate(self, resource: ResourceType, *scope: Any) -> int:
        """Invalidate one key or a family of keys.

        Args:
            resource: Resource type.
            scope: Leading key parts. All parts delete one key directly;
                fewer parts delete every key that starts with them.

        Returns:
            Number of keys removed (0 when the backend was unavailable).
        """
        return await self._apply(InvalidationTarget(resource, tuple(scope)))

    async def _apply(self, target: InvalidationTarget) -> int:
        rendered = target.render()
        await self.pending.fence(matcher_for(rendered))
        if target.is_exact:
            removed = await self.client.delete(rendered)
        else:
            removed = await self.client.delete_pattern(rendered)

        if removed is None:
            logger.warning(
                "cache_invalidation_failed",
                resource=target.resource.value,
                target=rendered,
            )
            return 0

        await self.metrics.record_invalidated(removed)
        logger.debug(
            "cache_invalidated",
            resource=target.resource.value,
            target=rendered,
            removed=removed,
        )
        return removed

    async def dispatch(
        self,
        mutation: Mutation,
        *,
        project_id: Any | None = None,
        team_id: Any | None = None,
        user_id: Any | None = None,
        task_id: Any | None = None,
    ) -> int:
        """Invalidate every cached view a mutation makes stale.

        Args:
            mutation: The write that happened.
            project_id: Affected project.
            team_id: Affected team.
            user_id: Affected user.
            task_id: Affected task.

        Returns:
            Total number of keys removed.
        """
        targets = targets_for(
            mutation,
            project_id=project_id,
            team_id=team_id,
            user_id=user_id,
            task_id=task_id,
        )
        removed = 0
        for target in targets:
            removed += await self._apply(target)

        logger.info(
            "cache_mutation_invalidated",
            mutation=mutation.value,
            project_id=project_id,
            team_id=team_id,
            user_id=user_id,
            targets=len(targets),
            removed=removed,
        )
        return removed

    async def run_mutation(
        self,
        mutation: Mutation,
        write: Callable[[], Awaitable[T]],
        *,
        project_id: Any | None = None,
        team_id: Any | None = None,
        user_id: Any | None = None,
        task_id: Any | None = None,
    ) -> T:
        """Perform a write, then invalidate before returning its result.

        If the write raises, nothing is invalidated and the error
        propagates. Invalidation problems never reach the caller.
        """
        result = await write()
        try:
            await self.dispatch(
                mutation,
                project_id=project_id,
                team_id=team_id,
                user_id=user_id,
                task_id=task_id,
            )
        except Exception as e:
            logger.error(
                "cache_mutation_invalidation_error",
                mutation=mutation.value,
                error=str(e),
            )
        return result

    # ------------------------------------------------------------------
    # Administrative invalidation
    # ------------------------------------------------------------------

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete keys matching a raw pattern under a known prefix.

        Raises:
            UnsafePatternError: If the pattern is not scoped under a known
                resource prefix.
        """
        if not is_known_pattern(pattern):
            raise UnsafePatternError(pattern)

        await self.pending.fence(matcher_for(pattern))
        removed = await self.client.delete_pattern(pattern)
        if removed is None:
            logger.warning("cache_invalidation_failed", target=pattern)
            return 0
        await self.metrics.record_invalidated(removed)
        logger.info("cache_pattern_invalidated", pattern=pattern, removed=removed)
        return removed

    async def flush_all(self) -> bool:
        """Fence every pending write, then clear the cache database.

        Returns:
            True if the flush was applied.
        """
        await self.pending.fence(lambda key: True)
        return await self.client.flush()

    async def invalidate_project(self, project_id: Any) -> int:
        """Drop every project-scoped view for a project."""
        return await self.dispatch(Mutation.PROJECT_CHANGED, project_id=project_id)

    async def invalidate_user(self, user_id: Any) -> int:
        """Drop every user-scoped view for a user."""
        removed = 0
        for resource in (
            ResourceType.USER_TEAMS,
            ResourceType.USER_PROJECTS,
            ResourceType.USER_SESSION,
            ResourceType.DASHBOARD,
        ):
            removed += await self.invalidate(resource, user_id)
        removed += await self.invalidate(ResourceType.USER_SHIFTS, user_id)
        logger.info("cache_user_invalidated", user_id=user_id, removed=removed)
        return removed

    async def invalidate_team(self, team_id: Any) -> int:
        """Drop every team-scoped view for a team."""
        removed = await self.invalidate(ResourceType.TEAM_MEMBERS, team_id)
        removed += await self.invalidate(ResourceType.TEAM_SHIFTS, team_id)
        logger.info("cache_team_invalidated", team_id=team_id, removed=removed)
        return removed

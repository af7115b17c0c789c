"""Cache key schema and TTL policy table.

Keys are built as ``{prefix}:{part1}:{part2}...``. Each resource type has a
fixed prefix, a fixed ordered list of identifying parts and a TTL.
"""

from dataclasses import dataclass
from enum import Enum

from src.cache.errors import InvalidKeyPartError

KEY_DELIMITER = ":"
WILDCARD = "*"

# Placeholder parts for optional identifiers
NO_TEAM = "no-team"
ALL_DATES = "all"

_GLOB_CHARS = frozenset("*?[]")


class ResourceType(Enum):
    """Cached read views."""

    BOARD = "board"
    CATEGORIES = "categories"
    USER_TEAMS = "user-teams"
    TASK_DETAILS = "task-details"
    COLUMN_DATA = "column-data"
    USER_SESSION = "user-session"
    USER_SHIFTS = "user-shifts"
    USER_PROJECTS = "user-projects"
    TEAM_MEMBERS = "team-members"
    TEAM_SHIFTS = "team-shifts"
    PROJECT_TEAMS = "project-teams"
    DASHBOARD = "dashboard"


@dataclass(frozen=True)
class ResourceDescriptor:
    """Static description of one cached resource type.

    Attributes:
        prefix: Key prefix.
        ttl_seconds: Default cache lifetime.
        key_parts: Names of the identifying parts, in key order.
    """

    prefix: str
    ttl_seconds: int
    key_parts: tuple[str, ...]

    @property
    def arity(self) -> int:
        """Number of identifying parts in a full key."""
        return len(self.key_parts)


RESOURCE_DESCRIPTORS: dict[ResourceType, ResourceDescriptor] = {
    ResourceType.BOARD: ResourceDescriptor("board", 300, ("project_id", "team_id")),
    ResourceType.CATEGORIES: ResourceDescriptor("categories", 600, ("project_id",)),
    ResourceType.USER_TEAMS: ResourceDescriptor("user-teams", 900, ("user_id",)),
    ResourceType.TASK_DETAILS: ResourceDescriptor(
        "task-details", 180, ("project_id", "task_id")
    ),
    ResourceType.COLUMN_DATA: ResourceDescriptor("column-data", 300, ("project_id",)),
    ResourceType.USER_SESSION: ResourceDescriptor("user-session", 1800, ("user_id",)),
    ResourceType.USER_SHIFTS: ResourceDescriptor("user-shifts", 1800, ("user_id", "date")),
    ResourceType.USER_PROJECTS: ResourceDescriptor("user-projects", 1800, ("user_id",)),
    ResourceType.TEAM_MEMBERS: ResourceDescriptor("team-members", 1800, ("team_id",)),
    ResourceType.TEAM_SHIFTS: ResourceDescriptor("team-shifts", 1800, ("team_id", "date")),
    ResourceType.PROJECT_TEAMS: ResourceDescriptor("project-teams", 600, ("project_id",)),
    ResourceType.DASHBOARD: ResourceDescriptor("dashboard", 1800, ("user_id",)),
}

KNOWN_PREFIXES: frozenset[str] = frozenset(d.prefix for d in RESOURCE_DESCRIPTORS.values())


def get_descriptor(resource: ResourceType) -> ResourceDescriptor:
    """Look up the descriptor for a resource type."""
    return RESOURCE_DESCRIPTORS[resource]


def _format_part(part: object) -> str:
    text = str(part)
    if not text:
        raise InvalidKeyPartError(part, "empty part")
    if KEY_DELIMITER in text:
        raise InvalidKeyPartError(part, f"contains delimiter {KEY_DELIMITER!r}")
    if _GLOB_CHARS.intersection(text):
        raise InvalidKeyPartError(part, "contains glob characters")
    return text


def build_key(resource: ResourceType, *parts: object) -> str:
    """Build the cache key for a resource.

    Args:
        resource: Resource type.
        parts: Identifying parts in the resource's fixed order.

    Returns:
        Cache key string.

    Raises:
        InvalidKeyPartError: If a part is empty, contains the delimiter
            or contains a glob character, or the part count is wrong.
    """
    descriptor = get_descriptor(resource)
    if len(parts) != descriptor.arity:
        raise InvalidKeyPartError(
            parts,
            f"{resource.value} expects {descriptor.arity} parts "
            f"({', '.join(descriptor.key_parts)}), got {len(parts)}",
        )
    return KEY_DELIMITER.join([descriptor.prefix, *(_format_part(p) for p in parts)])


def build_pattern(resource: ResourceType, *leading_parts: object) -> str:
    """Build a glob pattern matching every key sharing the leading parts.

    ``build_pattern(ResourceType.BOARD, "P1")`` gives ``"board:P1:*"``.
    """
    descriptor = get_descriptor(resource)
    if len(leading_parts) >= descriptor.arity:
        raise InvalidKeyPartError(
            leading_parts,
            f"pattern for {resource.value} needs fewer than {descriptor.arity} parts",
        )
    return KEY_DELIMITER.join(
        [descriptor.prefix, *(_format_part(p) for p in leading_parts), WILDCARD]
    )


def is_known_pattern(pattern: str) -> bool:
    """Check that a pattern is scoped under a known resource prefix."""
    prefix, sep, _ = pattern.partition(KEY_DELIMITER)
    return bool(sep) and prefix in KNOWN_PREFIXES

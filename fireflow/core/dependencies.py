"""Bolt dependency resolution for fireflow.

Computes blocked/ready state and "up next" priority over a universe of
work units (bolts). Every function here is pure: inputs are never
mutated, nothing touches storage, and repeated calls give the same answer.

Blocking rules:
- A COMPLETE bolt is never blocked, whatever its own requirements say.
- Any other bolt is blocked by each required id that is missing from the
  universe or not COMPLETE.
- A blocked DRAFT bolt reports BLOCKED; no other status is rewritten.

This module is headless - no CLI dependencies.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional, Sequence

logger = logging.getLogger(__name__)


class BoltStatus(str, Enum):
    """Graph-context status of a work unit."""

    DRAFT = "Draft"
    BLOCKED = "Blocked"
    IN_PROGRESS = "InProgress"
    COMPLETE = "Complete"


# Run-context statuses map onto graph statuses
_RUN_STATUS_TO_BOLT: dict[str, BoltStatus] = {
    "pending": BoltStatus.DRAFT,
    "draft": BoltStatus.DRAFT,
    "todo": BoltStatus.DRAFT,
    "blocked": BoltStatus.BLOCKED,
    "in_progress": BoltStatus.IN_PROGRESS,
    "inprogress": BoltStatus.IN_PROGRESS,
    "active": BoltStatus.IN_PROGRESS,
    "completed": BoltStatus.COMPLETE,
    "complete": BoltStatus.COMPLETE,
    "done": BoltStatus.COMPLETE,
}


def bolt_status_for(value: Optional[str]) -> BoltStatus:
    """Translate a run-context or graph-context status string.

    Unknown or missing statuses are treated as DRAFT (not started).
    """
    if not value:
        return BoltStatus.DRAFT
    normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
    return _RUN_STATUS_TO_BOLT.get(normalized, BoltStatus.DRAFT)


@dataclass(frozen=True)
class Bolt:
    """A schedulable work unit with dependency edges.

    Attributes:
        id: Unique identifier
        status: Current graph status
        requires: Ids that must be COMPLETE before this bolt may start
            (duplicates are dropped)
        is_blocked: Derived; True if any requirement is unmet
        blocked_by: Derived; unmet requirement ids in ``requires`` order
        unblocks_count: Derived; how many bolts list this one in ``requires``
    """

    id: str
    status: BoltStatus = BoltStatus.DRAFT
    requires: tuple[str, ...] = ()
    is_blocked: bool = False
    blocked_by: tuple[str, ...] = ()
    unblocks_count: int = 0
    title: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        # requires is a set; keep first-seen order and stay hashable
        object.__setattr__(self, "requires", tuple(dict.fromkeys(self.requires)))
        if not isinstance(self.blocked_by, tuple):
            object.__setattr__(self, "blocked_by", tuple(self.blocked_by))
        if not isinstance(self.status, BoltStatus):
            object.__setattr__(self, "status", bolt_status_for(str(self.status)))


def _status_map(bolts: Iterable[Bolt]) -> dict[str, BoltStatus]:
    return {b.id: b.status for b in bolts}


def _unmet(bolt: Bolt, statuses: dict[str, BoltStatus]) -> list[str]:
    # Missing ids count as blocking
    return [req for req in bolt.requires if statuses.get(req) != BoltStatus.COMPLETE]


def compute_dependencies(bolts: Sequence[Bolt]) -> list[Bolt]:
    """Derive blocked state and unblock counts for every bolt.

    Must be given the complete universe so that requirements resolve
    against the right statuses.

    Args:
        bolts: All bolts

    Returns:
        New Bolt objects (same order) with ``is_blocked``, ``blocked_by``,
        ``unblocks_count`` and the possibly upgraded ``status`` filled in
    """
    statuses = _status_map(bolts)
    unblocks = Counter(req for bolt in bolts for req in bolt.requires)

    result = []
    for bolt in bolts:
        count = unblocks.get(bolt.id, 0)

        if bolt.status == BoltStatus.COMPLETE:
            result.append(replace(bolt, is_blocked=False, blocked_by=(), unblocks_count=count))
            continue

        blocked_by = _unmet(bolt, statuses)
        is_blocked = bool(blocked_by)
        status = bolt.status
        if is_blocked and status == BoltStatus.DRAFT:
            status = BoltStatus.BLOCKED

        result.append(
            replace(
                bolt,
                status=status,
                is_blocked=is_blocked,
                blocked_by=tuple(blocked_by),
                unblocks_count=count,
            )
        )

    logger.debug(
        "Computed dependencies for %d bolts (%d blocked)",
        len(result),
        sum(1 for b in result if b.is_blocked),
    )
    return result


def _up_next_key(bolt: Bolt) -> tuple[bool, int, str]:
    return (bolt.is_blocked, -bolt.unblocks_count, bolt.id)


def get_up_next(bolts: Sequence[Bolt]) -> list[Bolt]:
    """Order not-yet-started bolts for the "up next" queue.

    Priority:
    1. Unblocked before blocked (ready work is never hidden)
    2. Higher ``unblocks_count`` first (unlocks the most downstream work)
    3. Ascending id

    Args:
        bolts: Bolts with computed dependencies (see compute_dependencies)

    Returns:
        DRAFT and BLOCKED bolts in priority order
    """
    pending = [b for b in bolts if b.status in (BoltStatus.DRAFT, BoltStatus.BLOCKED)]
    return sorted(pending, key=_up_next_key)


def is_blocked(bolt: Bolt, bolts: Sequence[Bolt]) -> bool:
    """Check if a specific bolt is blocked.

    Args:
        bolt: The bolt to check
        bolts: All bolts for status lookup

    Returns:
        True if any required bolt is missing or incomplete
    """
    if bolt.status == BoltStatus.COMPLETE or not bolt.requires:
        return False
    return bool(_unmet(bolt, _status_map(bolts)))


def get_blocking(bolt: Bolt, bolts: Sequence[Bolt]) -> list[str]:
    """Return the ids blocking ``bolt``, in ``requires`` order."""
    if bolt.status == BoltStatus.COMPLETE:
        return []
    return _unmet(bolt, _status_map(bolts))


def count_unblocks(bolt_id: str, bolts: Sequence[Bolt]) -> int:
    """Count how many bolts list ``bolt_id`` in their requirements."""
    return sum(1 for b in bolts if bolt_id in b.requires)


def newly_unblocked(completed_id: str, bolts: Sequence[Bolt]) -> list[str]:
    """Find bolts that become ready once ``completed_id`` is COMPLETE.

    Only bolts that require ``completed_id`` and whose other requirements
    are already met are returned.

    Args:
        completed_id: Bolt that just completed
        bolts: All bolts (``completed_id`` may still show its old status)

    Returns:
        Sorted ids of bolts that are now unblocked
    """
    statuses = _status_map(bolts)
    statuses[completed_id] = BoltStatus.COMPLETE

    unblocked = [
        b.id
        for b in bolts
        if b.status != BoltStatus.COMPLETE
        and completed_id in b.requires
        and not _unmet(b, statuses)
    ]
    return sorted(unblocked)


def detect_cycle(bolts: Sequence[Bolt]) -> Optional[list[str]]:
    """Find a requirement cycle, for diagnostics.

    Cycles are not errors for the resolver (the bolts involved simply stay
    blocked), but they will never resolve on their own.

    Returns:
        Ids forming a cycle, starting and ending with the same id, or None
    """
    graph = {b.id: [r for r in b.requires] for b in bolts}

    # States: 0 = unvisited, 1 = visiting, 2 = visited
    state: dict[str, int] = {node: 0 for node in graph}

    # Explicit stack so long requirement chains cannot hit the recursion limit
    for start in graph:
        if state[start] != 0:
            continue

        path = [start]
        stack = [iter(graph[start])]
        state[start] = 1

        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                state[path.pop()] = 2
                stack.pop()
                continue

            if dep not in state:
                continue  # missing bolt, cannot be part of a cycle

            if state[dep] == 1:  # back edge
                return path[path.index(dep):] + [dep]

            if state[dep] == 0:
                state[dep] = 1
                path.append(dep)
                stack.append(iter(graph[dep]))

    return None

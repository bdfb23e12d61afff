"""
Feedback loop search over a directed adjacency mapping.

Every vertex with outgoing edges is used as a search root. From each root a
depth-first traversal runs with its own `visited` marks; whenever a neighbor
is already on the current path, the path segment from that neighbor onward is
a cycle. The neighbor check runs whether or not the traversal descended into
the neighbor, so one root can surface several overlapping cycles.

Cycles are rotated to start at their smallest vertex and deduplicated, then
closed (first vertex repeated at the end) and sorted by length, then name.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Sequence, Tuple

logger = logging.getLogger(__name__)


def canonicalize_cycle(path: Sequence[str]) -> List[str]:
    """Rotate `path` so its smallest vertex comes first."""
    i = path.index(min(path))
    return list(path[i:]) + list(path[:i])


def _search_from(
    root: str,
    outgoing: Mapping[str, Sequence[str]],
    found: List[List[str]],
    seen: set,
) -> None:
    visited = {root}
    path = [root]
    on_path: Dict[str, int] = {root: 0}
    # frame: [vertex, next neighbor index, descended into that neighbor]
    stack: List[list] = [[root, 0, False]]

    while stack:
        frame = stack[-1]
        vertex, idx, descended = frame
        neighbors = outgoing.get(vertex, ())

        if idx >= len(neighbors):
            stack.pop()
            path.pop()
            del on_path[vertex]
            continue

        neighbor = neighbors[idx]
        if not descended and neighbor not in visited:
            frame[2] = True
            visited.add(neighbor)
            on_path[neighbor] = len(path)
            path.append(neighbor)
            stack.append([neighbor, 0, False])
            continue

        pos = on_path.get(neighbor)
        if pos is not None:
            cycle = canonicalize_cycle(path[pos:])
            key = tuple(cycle)
            if key not in seen:
                seen.add(key)
                found.append(cycle)

        frame[1] = idx + 1
        frame[2] = False


def find_cycles(outgoing: Mapping[str, Sequence[str]]) -> List[List[str]]:
    """Return canonical, deduplicated cycles in discovery order.

    Roots are taken in the mapping's key order and neighbors in list order,
    so identical input always yields identical output.
    """
    found: List[List[str]] = []
    seen: set = set()
    for root in outgoing:
        _search_from(root, outgoing, found, seen)
    logger.debug("cycle search over %d roots found %d cycles", len(outgoing), len(found))
    return found


def _loop_sort_key(loop: List[str]) -> Tuple[int, List[str]]:
    return len(loop), loop


def close_and_sort(cycles: Sequence[Sequence[str]]) -> List[List[str]]:
    """Repeat each cycle's first vertex at its end, then sort by (length, names)."""
    closed = [list(c) + [c[0]] for c in cycles if c]
    return sorted(closed, key=_loop_sort_key)

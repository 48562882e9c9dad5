"""
Time-expanded A* over (cell, time) states and the reservation table it reads.

Agents are planned one at a time: each committed path is written into a
TemporalOccupancy, and later searches may not step into a reserved cell at the
moment it is reserved. Waiting in place costs one time step, like a move.
"""

from __future__ import annotations

import heapq
import time as _time
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

import numpy as np

from grid_planning import Cell, GridModel, Path, as_cell, manhattan, parse_move_order

State = Tuple[Cell, int]

DEFAULT_ITERATION_FACTOR = 100


class TemporalOccupancy:
    """Reservation table: time step -> cells reserved at that step."""

    def __init__(self) -> None:
        self._table: Dict[int, Set[Cell]] = {}

    def reserve(self, path: Sequence[Sequence[int]], start_time: int = 0) -> None:
        for i, cell in enumerate(path):
            self._table.setdefault(start_time + i, set()).add(as_cell(cell))

    def is_free(self, cell: Sequence[int], time: int) -> bool:
        reserved = self._table.get(time)
        return reserved is None or as_cell(cell) not in reserved

    def conflicts_with(self, path: Sequence[Sequence[int]], start_time: int = 0) -> bool:
        return any(not self.is_free(cell, start_time + i) for i, cell in enumerate(path))

    def reserved_at(self, time: int) -> Set[Cell]:
        return set(self._table.get(time, ()))

    def clear(self) -> None:
        self._table.clear()

    @property
    def horizon(self) -> int:
        """One past the last reserved time step (0 when empty)."""
        return max(self._table) + 1 if self._table else 0

    def snapshot(self) -> Dict[int, List[Cell]]:
        return {t: sorted(cells) for t, cells in sorted(self._table.items())}

    def __len__(self) -> int:
        return sum(len(cells) for cells in self._table.values())

    def __iter__(self) -> Iterator[Tuple[int, Cell]]:
        for t in sorted(self._table):
            for cell in sorted(self._table[t]):
                yield t, cell

    def __repr__(self) -> str:
        return f"TemporalOccupancy(steps={len(self._table)}, reservations={len(self)})"


def iteration_cap(grid: GridModel, factor: int = DEFAULT_ITERATION_FACTOR) -> int:
    return grid.width * grid.height * factor


def astar_time_aware_with_footprint(
    grid: GridModel,
    start: Sequence[int],
    goal: Sequence[int],
    occupancy: Optional[TemporalOccupancy] = None,
    t_start: int = 0,
    allow_wait: bool = True,
    move_order: Optional[str] = None,
    iteration_factor: int = DEFAULT_ITERATION_FACTOR,
    max_iterations: Optional[int] = None,
    deadline: Optional[float] = None,
) -> Tuple[Path, Dict[str, object]]:
    """Temporal A* returning ``(path, footprint)``.

    ``path`` holds one cell per time step beginning with ``start`` at
    ``t_start``; it is empty when the endpoints are invalid, the frontier runs
    dry, the iteration cap is hit, or ``deadline`` (a ``time.perf_counter()``
    timestamp) passes. ``footprint`` records the search effort: iteration
    count, termination reason, final arrival time, the order in which cells
    were first closed, and the number of (cell, time) states closed per cell.
    """
    start, goal = as_cell(start), as_cell(goal)
    occupancy = occupancy if occupancy is not None else TemporalOccupancy()
    directions = parse_move_order(move_order)
    cap = max_iterations if max_iterations is not None else iteration_cap(grid, iteration_factor)
    closed_order: Dict[Cell, int] = {}
    expansions = np.zeros((grid.height, grid.width), dtype=int)
    footprint: Dict[str, object] = {
        "iterations": 0,
        "max_iterations": cap,
        "reason": "invalid_endpoints",
        "final_time": None,
        "closed_order": closed_order,
        "expansions": expansions,
    }
    if not (grid.is_traversable(start) and grid.is_traversable(goal)):
        return [], footprint

    def heuristic(cell: Cell) -> int:
        return manhattan(cell, goal)

    # heap entries: (f, h, insertion counter, state); counter keeps ties FIFO
    counter = 0
    root: State = (start, t_start)
    openpq: List[Tuple[int, int, int, State]] = [(heuristic(start), heuristic(start), counter, root)]
    g_cost: Dict[State, int] = {root: 0}
    came: Dict[State, Optional[State]] = {root: None}
    closed: Set[State] = set()
    iterations = 0

    while openpq and iterations < cap:
        if deadline is not None and _time.perf_counter() > deadline:
            footprint.update(iterations=iterations, reason="deadline")
            return [], footprint
        iterations += 1
        _, _, _, cur = heapq.heappop(openpq)
        if cur in closed:
            continue
        cell, t = cur
        if cell == goal:
            seq: List[Cell] = []
            node: Optional[State] = cur
            while node is not None:
                seq.append(node[0])
                node = came[node]
            seq.reverse()
            footprint.update(iterations=iterations, reason="found", final_time=t)
            return seq, footprint
        closed.add(cur)
        closed_order.setdefault(cell, len(closed_order))
        expansions[cell.y, cell.x] += 1

        nt = t + 1
        candidates = [Cell(cell.x + dx, cell.y + dy) for dx, dy in directions]
        if allow_wait:
            candidates.append(cell)
        for nxt in candidates:
            if not grid.is_traversable(nxt) or not occupancy.is_free(nxt, nt):
                continue
            state = (nxt, nt)
            if state in closed:
                continue
            ng = g_cost[cur] + 1
            if state not in g_cost or ng < g_cost[state]:
                g_cost[state] = ng
                came[state] = cur
                h = heuristic(nxt)
                counter += 1
                heapq.heappush(openpq, (ng + h, h, counter, state))

    footprint.update(iterations=iterations, reason="iteration_cap" if openpq else "exhausted")
    return [], footprint


def astar_time_aware(
    grid: GridModel,
    start: Sequence[int],
    goal: Sequence[int],
    occupancy: Optional[TemporalOccupancy] = None,
    t_start: int = 0,
    allow_wait: bool = True,
    move_order: Optional[str] = None,
    iteration_factor: int = DEFAULT_ITERATION_FACTOR,
    max_iterations: Optional[int] = None,
) -> Path:
    path, _ = astar_time_aware_with_footprint(
        grid,
        start,
        goal,
        occupancy,
        t_start=t_start,
        allow_wait=allow_wait,
        move_order=move_order,
        iteration_factor=iteration_factor,
        max_iterations=max_iterations,
    )
    return path


__all__ = [
    "DEFAULT_ITERATION_FACTOR",
    "TemporalOccupancy",
    "iteration_cap",
    "astar_time_aware",
    "astar_time_aware_with_footprint",
]

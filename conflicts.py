"""
Residual-conflict detection over an aligned step-by-step position table.

``step_positions[t][i]`` is the cell of agent column ``i`` at time ``t``. Two or
more agents on one cell is a conflict unless every one of them is parked on its
own goal there (a shared-goal arrival).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from grid_planning import Cell, as_cell

StepTable = Sequence[Sequence[Sequence[int]]]

CONFLICT = "conflict"
SHARED_GOAL = "shared_goal"


@dataclass(frozen=True)
class Collision:
    time: int
    cell: Cell
    agents: Tuple[int, ...]
    kind: str

    @property
    def is_conflict(self) -> bool:
        return self.kind == CONFLICT


def _occupants(positions: Sequence[Sequence[int]]) -> Dict[Cell, List[int]]:
    seen: Dict[Cell, List[int]] = {}
    for idx, cell in enumerate(positions):
        seen.setdefault(as_cell(cell), []).append(idx)
    return seen


def _all_at_goal(cell: Cell, agents: Sequence[int], goals: Optional[Sequence[Sequence[int]]]) -> bool:
    if goals is None:
        return False
    for idx in agents:
        if idx >= len(goals) or as_cell(goals[idx]) != cell:
            return False
    return True


def list_collisions(step_positions: StepTable, goals: Optional[Sequence[Sequence[int]]] = None) -> List[Collision]:
    """Every shared cell at every step, classified as a conflict or a shared-goal arrival."""
    events: List[Collision] = []
    for t, positions in enumerate(step_positions):
        for cell, agents in _occupants(positions).items():
            if len(agents) < 2:
                continue
            kind = SHARED_GOAL if _all_at_goal(cell, agents, goals) else CONFLICT
            events.append(Collision(time=t, cell=cell, agents=tuple(agents), kind=kind))
    return events


def find_collisions(step_positions: StepTable, goals: Optional[Sequence[Sequence[int]]] = None) -> List[Tuple[int, int]]:
    """Return ``(time, agent_index)`` once per colliding pair, against the lower index.

    Shared-goal arrivals are skipped when ``goals`` (aligned with the table's
    columns) is given; without it every shared cell counts.
    """
    out: List[Tuple[int, int]] = []
    for event in list_collisions(step_positions, goals):
        if not event.is_conflict:
            continue
        agents = event.agents
        for i in range(len(agents)):
            for _ in range(i + 1, len(agents)):
                out.append((event.time, agents[i]))
    return out


def has_collision(step_positions: StepTable, time: int, goals: Optional[Sequence[Sequence[int]]] = None) -> bool:
    if time < 0 or time >= len(step_positions):
        return False
    for cell, agents in _occupants(step_positions[time]).items():
        if len(agents) > 1 and not _all_at_goal(cell, agents, goals):
            return True
    return False


def count_vertex_conflicts(step_positions: StepTable, goals: Optional[Sequence[Sequence[int]]] = None) -> int:
    return sum(len(event.agents) - 1 for event in list_collisions(step_positions, goals) if event.is_conflict)


def _cell_at(path: Sequence[Sequence[int]], t: int) -> Cell:
    if t < len(path):
        return as_cell(path[t])
    return as_cell(path[-1])


def find_swap_conflicts(paths: Sequence[Optional[Sequence[Sequence[int]]]]) -> List[Dict[str, object]]:
    """Head-on swaps: agent A moves u->v while agent B moves v->u between t and t+1.

    The reservation table only guards cells, so swaps can slip through; they
    are reported for diagnostics only.
    """
    events: List[Dict[str, object]] = []
    max_len = max((len(p) for p in paths if p), default=0)
    for t in range(max_len - 1):
        for i in range(len(paths)):
            pi = paths[i]
            if not pi:
                continue
            u1, v1 = _cell_at(pi, t), _cell_at(pi, t + 1)
            if u1 == v1:
                continue
            for j in range(i + 1, len(paths)):
                pj = paths[j]
                if not pj:
                    continue
                u2, v2 = _cell_at(pj, t), _cell_at(pj, t + 1)
                if u2 == v2:
                    continue
                if u1 == v2 and v1 == u2:
                    events.append({"type": "swap", "time": t, "edge": (u1, v1), "agents": (i, j)})
    return events


def collision_counts_per_step(step_positions: StepTable, goals: Optional[Sequence[Sequence[int]]] = None) -> List[int]:
    counts = [0] * len(step_positions)
    for event in list_collisions(step_positions, goals):
        if event.is_conflict:
            counts[event.time] += len(event.agents) - 1
    return counts


__all__ = [
    "CONFLICT",
    "SHARED_GOAL",
    "Collision",
    "list_collisions",
    "find_collisions",
    "has_collision",
    "count_vertex_conflicts",
    "find_swap_conflicts",
    "collision_counts_per_step",
]

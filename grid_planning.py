"""
Grid model, cell helpers, and the plain (non-temporal) single-agent searches.

The temporal planner builds on the GridModel defined here; A*, BFS and DFS are
kept for single-agent runs and for diagnosing why a temporal search failed.
"""

from __future__ import annotations

import heapq
from collections import deque
from typing import Dict, FrozenSet, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

# Terrain codes shared with the battle-map loader
GROUND = -1
START = 0
ELEVATED = 3
GOAL = 8
TRAVERSABLE_CODES: FrozenSet[int] = frozenset({GROUND, START, GOAL})

DEFAULT_MOVE_ORDER = "rdlu"
DIRECTIONS: Dict[str, Tuple[int, int]] = {
    "r": (1, 0),
    "d": (0, 1),
    "l": (-1, 0),
    "u": (0, -1),
}
DIRECTION_NAMES = {"r": "Right", "d": "Down", "l": "Left", "u": "Up"}


class Cell(NamedTuple):
    """Grid location; x is the column, y is the row."""

    x: int
    y: int

    def __str__(self) -> str:
        return f"({self.x},{self.y})"


Path = List[Cell]


def as_cell(value: Sequence[int]) -> Cell:
    if isinstance(value, Cell):
        return value
    x, y = value
    return Cell(int(x), int(y))


def manhattan(a: Sequence[int], b: Sequence[int]) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def is_valid_move_order(move_order: str) -> bool:
    if not move_order or len(move_order) != 4:
        return False
    return sorted(move_order.lower()) == sorted(DIRECTIONS)


def parse_move_order(move_order: Optional[str] = None) -> List[Tuple[int, int]]:
    """Translate e.g. ``"uldr"`` into the (dx, dy) expansion order."""
    order = DEFAULT_MOVE_ORDER if move_order is None else move_order
    if not is_valid_move_order(order):
        raise ValueError(f"Invalid move order {order!r}; expected a permutation of 'rdlu'")
    return [DIRECTIONS[ch] for ch in order.lower()]


def describe_move_order(move_order: str = DEFAULT_MOVE_ORDER) -> str:
    parse_move_order(move_order)
    return " -> ".join(DIRECTION_NAMES[ch] for ch in move_order.lower())


class GridModel:
    """Immutable terrain grid with the designated start and goal cells.

    Terrain is stored row-major as ``terrain[y, x]``. A cell is traversable when
    its code is ground, start or goal, or one of ``extra_traversable``.
    """

    def __init__(self, terrain: Iterable[Iterable[int]], extra_traversable: Iterable[int] = ()) -> None:
        arr = np.array([list(row) for row in terrain], dtype=int)
        if arr.ndim != 2 or arr.size == 0:
            raise ValueError("Terrain must be a non-empty rectangular grid")
        arr.flags.writeable = False
        self._terrain = arr
        self._passable = TRAVERSABLE_CODES | frozenset(int(c) for c in extra_traversable)
        starts: List[Cell] = []
        goals: List[Cell] = []
        for y in range(self.height):
            for x in range(self.width):
                code = int(arr[y, x])
                if code == START:
                    starts.append(Cell(x, y))
                elif code == GOAL:
                    goals.append(Cell(x, y))
        self._starts: Tuple[Cell, ...] = tuple(starts)
        self._goals: Tuple[Cell, ...] = tuple(goals)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[int]], extra_traversable: Iterable[int] = ()) -> "GridModel":
        widths = {len(row) for row in rows}
        if len(widths) != 1:
            raise ValueError(f"Rows have inconsistent widths: {sorted(widths)}")
        return cls(rows, extra_traversable)

    @classmethod
    def from_flat(
        cls,
        data: Sequence[int],
        width: int,
        height: int,
        extra_traversable: Iterable[int] = (),
    ) -> "GridModel":
        if width <= 0 or height <= 0:
            raise ValueError("Grid dimensions must be positive")
        if len(data) != width * height:
            raise ValueError(f"Data size ({len(data)}) doesn't match dimensions ({width}x{height} = {width * height})")
        rows = [list(data[y * width:(y + 1) * width]) for y in range(height)]
        return cls(rows, extra_traversable)

    @property
    def width(self) -> int:
        return int(self._terrain.shape[1])

    @property
    def height(self) -> int:
        return int(self._terrain.shape[0])

    @property
    def terrain(self) -> np.ndarray:
        return self._terrain

    @property
    def traversable_codes(self) -> FrozenSet[int]:
        return self._passable

    def is_in_bounds(self, cell: Sequence[int]) -> bool:
        x, y = cell
        return 0 <= x < self.width and 0 <= y < self.height

    def terrain_at(self, cell: Sequence[int]) -> Optional[int]:
        if not self.is_in_bounds(cell):
            return None
        x, y = cell
        return int(self._terrain[y, x])

    def is_traversable(self, cell: Sequence[int]) -> bool:
        code = self.terrain_at(cell)
        return code is not None and code in self._passable

    def all_starts(self) -> Tuple[Cell, ...]:
        return self._starts

    def all_goals(self) -> Tuple[Cell, ...]:
        return self._goals

    def neighbors(self, cell: Sequence[int], move_order: Optional[str] = None) -> Iterator[Cell]:
        x, y = cell
        for dx, dy in parse_move_order(move_order):
            nxt = Cell(x + dx, y + dy)
            if self.is_traversable(nxt):
                yield nxt

    def traversable_mask(self) -> np.ndarray:
        return np.isin(self._terrain, list(self._passable))

    def count_terrain(self) -> Dict[str, int]:
        flat = self._terrain.ravel()
        known = np.isin(flat, [GROUND, START, GOAL, ELEVATED])
        return {
            "ground": int(np.sum(flat == GROUND)),
            "start": int(np.sum(flat == START)),
            "goal": int(np.sum(flat == GOAL)),
            "elevated": int(np.sum(flat == ELEVATED)),
            "custom": int(np.sum(~known)),
            "total": int(flat.size),
        }

    def with_endpoints(self, start: Sequence[int], goal: Sequence[int]) -> "GridModel":
        """Copy of the grid with every start/goal marker reset to ground and one new pair placed."""
        arr = self._terrain.copy()
        arr[(arr == START) | (arr == GOAL)] = GROUND
        sx, sy = start
        gx, gy = goal
        arr[sy, sx] = START
        arr[gy, gx] = GOAL
        return GridModel(arr.tolist(), self._passable - TRAVERSABLE_CODES)

    def ascii(self, path: Optional[Sequence[Sequence[int]]] = None) -> str:
        on_path = {as_cell(c) for c in path or []}
        lines = []
        for y in range(self.height):
            row = []
            for x in range(self.width):
                code = int(self._terrain[y, x])
                if code == START:
                    row.append("S")
                elif code == GOAL:
                    row.append("T")
                elif Cell(x, y) in on_path:
                    row.append("*")
                elif code == GROUND:
                    row.append(".")
                elif code == ELEVATED:
                    row.append("#")
                else:
                    row.append("?")
            lines.append("".join(row))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"GridModel({self.width}x{self.height}, starts={len(self._starts)}, goals={len(self._goals)})"


def _endpoints_ok(grid: GridModel, start: Cell, goal: Cell) -> bool:
    return grid.is_traversable(start) and grid.is_traversable(goal)


def _reconstruct(came: Dict[Cell, Optional[Cell]], node: Cell) -> Path:
    path = []
    cur: Optional[Cell] = node
    while cur is not None:
        path.append(cur)
        cur = came[cur]
    return list(reversed(path))


def astar(
    grid: GridModel,
    start: Sequence[int],
    goal: Sequence[int],
    move_order: Optional[str] = None,
) -> Path:
    start, goal = as_cell(start), as_cell(goal)
    if not _endpoints_ok(grid, start, goal):
        return []

    counter = 0
    openpq: List[Tuple[int, int, int, Cell]] = []
    heapq.heappush(openpq, (manhattan(start, goal), manhattan(start, goal), counter, start))
    came: Dict[Cell, Optional[Cell]] = {start: None}
    g: Dict[Cell, int] = {start: 0}
    closed = set()

    while openpq:
        _, _, _, cur = heapq.heappop(openpq)
        if cur in closed:
            continue
        if cur == goal:
            return _reconstruct(came, cur)
        closed.add(cur)
        for nxt in grid.neighbors(cur, move_order):
            ng = g[cur] + 1
            if nxt not in g or ng < g[nxt]:
                g[nxt] = ng
                came[nxt] = cur
                h = manhattan(nxt, goal)
                counter += 1
                heapq.heappush(openpq, (ng + h, h, counter, nxt))
    return []


def bfs(
    grid: GridModel,
    start: Sequence[int],
    goal: Sequence[int],
    move_order: Optional[str] = None,
) -> Path:
    start, goal = as_cell(start), as_cell(goal)
    if not _endpoints_ok(grid, start, goal):
        return []
    queue = deque([start])
    came: Dict[Cell, Optional[Cell]] = {start: None}
    while queue:
        cur = queue.popleft()
        if cur == goal:
            return _reconstruct(came, cur)
        for nxt in grid.neighbors(cur, move_order):
            if nxt not in came:
                came[nxt] = cur
                queue.append(nxt)
    return []


def dfs(
    grid: GridModel,
    start: Sequence[int],
    goal: Sequence[int],
    move_order: Optional[str] = None,
) -> Path:
    """Depth-first search; finds *a* path, not necessarily the shortest."""
    start, goal = as_cell(start), as_cell(goal)
    if not _endpoints_ok(grid, start, goal):
        return []
    max_len = grid.width * grid.height
    stack: List[Path] = [[start]]
    visited = set()
    while stack:
        path = stack.pop()
        cur = path[-1]
        if cur == goal:
            return path
        if cur in visited or len(path) > max_len:
            continue
        visited.add(cur)
        # reversed so the first direction in the move order is explored first
        for nxt in reversed(list(grid.neighbors(cur, move_order))):
            if nxt not in path:
                stack.append(path + [nxt])
    return []


SEARCHES = {"astar": astar, "bfs": bfs, "dfs": dfs}


def find_path(grid: GridModel, start: Sequence[int], goal: Sequence[int], algorithm: str = "astar", move_order: Optional[str] = None) -> Path:
    try:
        search = SEARCHES[algorithm.lower()]
    except KeyError:
        raise ValueError(f"Unknown algorithm {algorithm!r}; choose from {sorted(SEARCHES)}") from None
    return search(grid, start, goal, move_order=move_order)


def validate_path(path: Sequence[Sequence[int]], grid: GridModel, allow_wait: bool = False) -> bool:
    """True when every cell is traversable and consecutive cells are orthogonal neighbours.

    With ``allow_wait`` a repeated cell (waiting in place) is also accepted.
    """
    if not path:
        return False
    for i, cell in enumerate(path):
        if not grid.is_traversable(cell):
            return False
        if i == 0:
            continue
        step = manhattan(path[i - 1], cell)
        if step == 1 or (allow_wait and step == 0):
            continue
        return False
    return True


def path_length(path: Optional[Sequence[Sequence[int]]]) -> Optional[int]:
    if not path:
        return None
    return len(path) - 1


def count_waits(path: Optional[Sequence[Sequence[int]]]) -> int:
    if not path:
        return 0
    return sum(1 for a, b in zip(path, path[1:]) if tuple(a) == tuple(b))


def path_to_actions(path: Sequence[Sequence[int]]) -> List[str]:
    if not path or len(path) < 2:
        return []
    out: List[str] = []
    for (x1, y1), (x2, y2) in zip(path, path[1:]):
        dx, dy = x2 - x1, y2 - y1
        if (dx, dy) == (1, 0):
            out.append("R")
        elif (dx, dy) == (0, 1):
            out.append("D")
        elif (dx, dy) == (-1, 0):
            out.append("L")
        elif (dx, dy) == (0, -1):
            out.append("U")
        else:
            out.append("WAIT")
    return out


__all__ = [
    "GROUND",
    "START",
    "ELEVATED",
    "GOAL",
    "TRAVERSABLE_CODES",
    "DEFAULT_MOVE_ORDER",
    "Cell",
    "Path",
    "as_cell",
    "manhattan",
    "is_valid_move_order",
    "parse_move_order",
    "describe_move_order",
    "GridModel",
    "astar",
    "bfs",
    "dfs",
    "SEARCHES",
    "find_path",
    "validate_path",
    "path_length",
    "count_waits",
    "path_to_actions",
]

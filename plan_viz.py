"""
Plotting and GIF playback for grids, single paths and multi-agent plans.

Every plotting helper returns the figure; pass ``show=True`` to also call
``plt.show()`` (notebook use). Coordinates are drawn as (x=column, y=row) with
row 0 at the top.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

try:
    import matplotlib.patheffects as pe
    import matplotlib.pyplot as plt
    from matplotlib.animation import PillowWriter
    from matplotlib.patches import Patch, Rectangle
except ImportError:  # pragma: no cover - plotting disabled in minimal installs
    pe = plt = PillowWriter = Patch = Rectangle = None

from conflicts import list_collisions
from grid_planning import ELEVATED, GOAL, GROUND, START, Cell, GridModel, as_cell
from multi_agent_planner import PlanningResult


def _require_matplotlib() -> None:
    if plt is None or pe is None:
        raise ImportError("matplotlib is required for plotting helpers")


def _grid_image(grid: GridModel) -> np.ndarray:
    """0 open, 0.3 whitelisted custom terrain, 0.55 blocked custom terrain, 1 elevated."""
    terrain = grid.terrain
    img = np.where(grid.traversable_mask(), 0.0, 1.0)
    custom = ~np.isin(terrain, [GROUND, START, GOAL]) & grid.traversable_mask()
    img[custom] = 0.3
    blocked_custom = ~np.isin(terrain, [GROUND, START, GOAL, ELEVATED]) & ~grid.traversable_mask()
    img[blocked_custom] = 0.55
    return img


def _setup_axes(ax, grid: GridModel, title: str) -> None:
    ax.set_title(title)
    ax.set_xticks(range(grid.width))
    ax.set_yticks(range(grid.height))
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_xlim(-0.5, grid.width - 0.5)
    ax.set_ylim(grid.height - 0.5, -0.5)


def _white_text(ax, x: float, y: float, text: str, **kw):
    kw.setdefault("fontsize", 10)
    kw.setdefault("color", "white")
    kw.setdefault("ha", "center")
    kw.setdefault("va", "center")
    txt = ax.text(x, y, text, **kw)
    txt.set_path_effects([pe.withStroke(linewidth=2.5, foreground="black")])
    return txt


def _agent_offset(k: int) -> Tuple[float, float]:
    base_offsets = [(-0.18, -0.18), (0.0, 0.0), (0.18, 0.18), (0.18, -0.18), (-0.18, 0.18)]
    return base_offsets[k % len(base_offsets)]


def _agent_color(k: int):
    return plt.get_cmap("tab10")(k % 10)


def _finish(fig, show: bool):
    if show:
        plt.show()
    return fig


def _draw_endpoints(ax, grid: GridModel) -> None:
    for s in grid.all_starts():
        _white_text(ax, s.x, s.y, "S", fontweight="bold")
    for g in grid.all_goals():
        _white_text(ax, g.x, g.y, "T", fontweight="bold")


def plot_grid(
    grid: GridModel,
    title: str = "map",
    figsize: Optional[Tuple[float, float]] = None,
    annotate_endpoints: bool = True,
    show: bool = False,
):
    _require_matplotlib()
    fig, ax = plt.subplots(figsize=figsize or (4, 4))
    ax.imshow(_grid_image(grid), cmap="cividis", vmin=0.0, vmax=1.0)
    _setup_axes(ax, grid, title)
    if annotate_endpoints:
        _draw_endpoints(ax, grid)
        counts = grid.count_terrain()
        legend_items = [
            Patch(facecolor="none", edgecolor="none", label=f"Start x{counts['start']}"),
            Patch(facecolor="none", edgecolor="none", label=f"Goal x{counts['goal']}"),
        ]
        ax.legend(handles=legend_items, loc="upper left", bbox_to_anchor=(1.02, 1.0), borderaxespad=0.0, framealpha=0.9)
        fig.subplots_adjust(right=0.75)
    return _finish(fig, show)


def plot_path(
    grid: GridModel,
    path: Optional[Sequence[Sequence[int]]],
    title: str = "path",
    color: str = "deepskyblue",
    annotate_every: int = 5,
    show: bool = False,
):
    _require_matplotlib()
    fig, ax = plt.subplots(figsize=(7, 7))
    ax.imshow(_grid_image(grid), cmap="cividis", alpha=0.85, vmin=0.0, vmax=1.0)
    _setup_axes(ax, grid, title)

    if not path:
        ax.text(0.5, 0.5, "No path", transform=ax.transAxes)
        return _finish(fig, show)

    xs = [c[0] for c in path]
    ys = [c[1] for c in path]
    ax.plot(xs, ys, "-", linewidth=2.8, color=color, alpha=0.95)
    ax.scatter(xs, ys, s=28, c=range(len(path)), cmap="plasma", edgecolors="white", linewidths=0.6)
    for idx, (x, y) in enumerate(path):
        if annotate_every and (idx in (0, len(path) - 1) or idx % annotate_every == 0):
            txt = "S" if idx == 0 else ("G" if idx == len(path) - 1 else str(idx))
            _white_text(ax, x, y, txt, fontsize=9)
    return _finish(fig, show)


def plot_plan(
    grid: GridModel,
    result: PlanningResult,
    title: Optional[str] = None,
    annotate_every: int = 3,
    show: bool = False,
):
    """All found paths on one map, offset per agent, with conflict cells boxed in red."""
    _require_matplotlib()
    fig, ax = plt.subplots(figsize=(6, 6))
    ax.imshow(_grid_image(grid), cmap="cividis", alpha=0.85, vmin=0.0, vmax=1.0)
    _setup_axes(ax, grid, title or f"{result.strategy.value}: {result.success_count}/{len(result.agents)} agents")

    for k, agent in enumerate(result.agents):
        dx, dy = _agent_offset(k)
        _white_text(ax, agent.goal.x + dx, agent.goal.y + dy, f"G{agent.id}", fontsize=9, fontweight="bold")
        if not agent.found:
            _white_text(ax, agent.start.x + dx, agent.start.y + dy, f"S{agent.id}?", fontsize=9, color="tomato")
            continue
        xs = [c.x + dx for c in agent.path]
        ys = [c.y + dy for c in agent.path]
        color = _agent_color(k)
        ax.plot(xs, ys, linestyle="-", linewidth=2.0, alpha=0.95, color=color, label=f"agent {agent.id}")
        ax.scatter(xs, ys, s=22, color=color, edgecolors="white", linewidths=0.8, zorder=3)
        for t, (x, y) in enumerate(zip(xs, ys)):
            if t in (0, len(xs) - 1) or (annotate_every and t % annotate_every == 0):
                _white_text(ax, x, y, f"{agent.id}:{t}", fontsize=8)

    for event in result.collisions():
        if event.is_conflict:
            ax.add_patch(Rectangle((event.cell.x - 0.5, event.cell.y - 0.5), 1, 1, fill=False, edgecolor="red", linewidth=2.0))
    if result.found_agents:
        ax.legend(loc="upper right", framealpha=0.9)
    return _finish(fig, show)


def animate_plan_gif(
    grid: GridModel,
    result: PlanningResult,
    out_gif: str = "multi_agent_playback.gif",
    fps: int = 2,
    dpi: int = 120,
) -> str:
    """Write a step-by-step playback of ``result.step_positions`` and return the file name."""
    _require_matplotlib()
    if PillowWriter is None:
        raise ImportError("matplotlib PillowWriter is required for GIF export")
    found = result.found_agents
    table = result.step_positions
    conflict_cells: Dict[int, List[Cell]] = defaultdict(list)
    for event in list_collisions(table, result.goals_for_step_table()):
        if event.is_conflict:
            conflict_cells[event.time].append(event.cell)

    img = _grid_image(grid)
    fig, ax = plt.subplots(figsize=(6, 6))
    writer = PillowWriter(fps=fps)
    with writer.saving(fig, out_gif, dpi=dpi):
        for t in range(max(1, len(table))):
            ax.clear()
            ax.imshow(img, cmap="cividis", vmin=0.0, vmax=1.0)
            _setup_axes(ax, grid, f"t = {t}")
            for k, agent in enumerate(found):
                dx, dy = _agent_offset(k)
                _white_text(ax, agent.goal.x + dx, agent.goal.y + dy, f"G{agent.id}", fontsize=9)
                if t >= len(table):
                    continue
                trail = [row[k] for row in table[: t + 1]]
                xs = [c.x + dx for c in trail]
                ys = [c.y + dy for c in trail]
                color = _agent_color(k)
                if len(xs) >= 2:
                    ax.plot(xs, ys, linestyle="-", linewidth=2.0, alpha=0.8, color=color)
                ax.scatter(xs[-1:], ys[-1:], s=60, color=color, edgecolors="white", linewidths=0.9, zorder=3)
                _white_text(ax, xs[-1], ys[-1], str(agent.id), fontsize=10)
            for cell in conflict_cells.get(t, []):
                ax.add_patch(Rectangle((cell.x - 0.5, cell.y - 0.5), 1, 1, fill=False, edgecolor="red", linewidth=2.5))
            writer.grab_frame()
    plt.close(fig)
    print(f"Saved GIF to: {out_gif}")
    return out_gif


def plot_conflict_timeline(tl: Dict[str, List[int]], title: str = "Conflicts over time", show: bool = False):
    _require_matplotlib()
    fig, ax = plt.subplots(figsize=(7.5, 3.5))
    ax.plot(tl["t"], tl["vertex"], label="vertex", linewidth=2.0)
    ax.plot(tl["t"], tl["edge"], label="swap", linewidth=2.0)
    if "shared_goal" in tl:
        ax.plot(tl["t"], tl["shared_goal"], label="shared goal", linewidth=1.5, linestyle="--")
    ax.set_title(title)
    ax.set_xlabel("t")
    ax.set_ylabel("conflicts")
    ax.legend(loc="upper right")
    ax.grid(True, alpha=0.25)
    return _finish(fig, show)


def wait_move_segments(path: Optional[Sequence[Sequence[int]]]) -> List[Tuple[str, int, int]]:
    """Collapse a path into ``(kind, t_start, t_end)`` runs of ``"wait"`` or ``"move"``."""
    if not path or len(path) < 2:
        return []
    segs = []
    cur_type = None
    start = 0
    for i in range(1, len(path)):
        typ = "wait" if as_cell(path[i]) == as_cell(path[i - 1]) else "move"
        if cur_type is None:
            cur_type = typ
            start = i - 1
        elif typ != cur_type:
            segs.append((cur_type, start, i - 1))
            cur_type = typ
            start = i - 1
    segs.append((cur_type, start, len(path) - 1))
    return segs


def plot_wait_gantt(
    paths: Sequence[Optional[Sequence[Sequence[int]]]],
    labels: Optional[Sequence[str]] = None,
    title: str = "Wait vs Move (Gantt)",
    show: bool = False,
):
    _require_matplotlib()
    labels = list(labels) if labels is not None else [f"A{i}" for i in range(len(paths))]
    fig, ax = plt.subplots(figsize=(8.5, 0.6 * max(3, len(paths))))
    for idx, p in enumerate(paths):
        for typ, s, e in wait_move_segments(p):
            color = "tomato" if typ == "wait" else "deepskyblue"
            ax.barh(idx, e - s, left=s, height=0.6, color=color, alpha=0.9)
    ax.set_title(title)
    ax.set_xlabel("t")
    ax.set_ylabel("agent")
    ax.set_yticks(range(len(paths)))
    ax.set_yticklabels(labels)
    ax.legend(
        handles=[Patch(facecolor="deepskyblue", label="move"), Patch(facecolor="tomato", label="wait")],
        loc="upper right",
        framealpha=0.9,
    )
    ax.grid(True, axis="x", alpha=0.25)
    return _finish(fig, show)


def plot_explored_heatmap(
    grid: GridModel,
    footprint: Dict[str, object],
    field: str = "closed_order",
    title: Optional[str] = None,
    show: bool = False,
):
    """Heatmap of a temporal-search footprint.

    ``field="closed_order"`` colours cells by when they were first closed;
    ``field="expansions"`` by how many (cell, time) states were closed there.
    """
    _require_matplotlib()
    if field == "closed_order":
        arr = np.full((grid.height, grid.width), np.nan, dtype=float)
        for cell, idx in footprint["closed_order"].items():
            arr[cell[1], cell[0]] = idx
        label = "First-closed order"
    elif field == "expansions":
        arr = np.asarray(footprint["expansions"], dtype=float).copy()
        arr[arr == 0] = np.nan
        label = "States closed"
    else:
        raise ValueError(f"Unknown footprint field {field!r}; use 'closed_order' or 'expansions'")
    fig, ax = plt.subplots(figsize=(6.5, 6.5))
    ax.imshow(_grid_image(grid), cmap="cividis", alpha=0.35, vmin=0.0, vmax=1.0)
    im = ax.imshow(arr, cmap="magma", alpha=0.9)
    _setup_axes(ax, grid, title or f"Temporal A* {label.lower()} ({footprint.get('iterations', 0)} iterations)")
    cbar = plt.colorbar(im, ax=ax, fraction=0.046, pad=0.04)
    cbar.set_label(label)
    return _finish(fig, show)


__all__ = [
    "plot_grid",
    "plot_path",
    "plot_plan",
    "animate_plan_gif",
    "plot_conflict_timeline",
    "wait_move_segments",
    "plot_wait_gantt",
    "plot_explored_heatmap",
]

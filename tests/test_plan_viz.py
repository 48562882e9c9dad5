"""Smoke tests for the plotting helpers and GIF playback."""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pytest  # noqa: E402

from experiments import conflict_timeline  # noqa: E402
from grid_planning import GROUND, GridModel  # noqa: E402
from map_layouts import BATTLE_MAP_DEMO, layout_to_grid  # noqa: E402
from multi_agent_planner import Agent, PlannerConfig, plan  # noqa: E402
from plan_viz import (  # noqa: E402
    animate_plan_gif,
    plot_conflict_timeline,
    plot_explored_heatmap,
    plot_grid,
    plot_path,
    plot_plan,
    plot_wait_gantt,
    wait_move_segments,
)
from temporal_planning import astar_time_aware_with_footprint  # noqa: E402


@pytest.fixture
def corridor_plan():
    grid = GridModel.from_flat([GROUND] * 5, 5, 1)
    agents = [Agent(1, (0, 0), (4, 0)), Agent(2, (4, 0), (3, 0))]
    return grid, plan(agents, grid, PlannerConfig(strategy="wait"))


def test_plot_grid_returns_figure() -> None:
    fig = plot_grid(layout_to_grid(BATTLE_MAP_DEMO), title="demo")
    assert fig.axes[0].get_title() == "demo"
    plt.close(fig)


def test_plot_path_handles_missing_path() -> None:
    grid = layout_to_grid(BATTLE_MAP_DEMO)
    fig = plot_path(grid, [])
    texts = [t.get_text() for t in fig.axes[0].texts]
    assert "No path" in texts
    plt.close(fig)


def test_plot_path_draws_route() -> None:
    grid = GridModel.from_flat([GROUND] * 9, 3, 3)
    fig = plot_path(grid, [(0, 0), (1, 0), (2, 0), (2, 1)])
    assert len(fig.axes[0].lines) == 1
    plt.close(fig)


def test_plot_plan_boxes_conflict_cells(corridor_plan) -> None:
    grid, result = corridor_plan
    fig = plot_plan(grid, result)
    ax = fig.axes[0]
    assert len(ax.lines) == 2
    assert len(ax.patches) == len([ev for ev in result.collisions() if ev.is_conflict])
    plt.close(fig)


def test_plot_plan_marks_failed_agents() -> None:
    grid = GridModel.from_rows([[GROUND, 3, GROUND]])
    result = plan([Agent(1, (0, 0), (2, 0))], grid)
    fig = plot_plan(grid, result)
    assert any(t.get_text() == "S1?" for t in fig.axes[0].texts)
    plt.close(fig)


def test_animate_plan_gif_writes_file(tmp_path: Path, corridor_plan, capsys) -> None:
    grid, result = corridor_plan
    out = tmp_path / "playback.gif"
    written = animate_plan_gif(grid, result, out_gif=str(out), fps=4, dpi=40)
    assert written == str(out)
    assert out.exists() and out.stat().st_size > 0
    assert "Saved GIF to:" in capsys.readouterr().out


def test_conflict_timeline_and_gantt(corridor_plan) -> None:
    _, result = corridor_plan
    fig = plot_conflict_timeline(conflict_timeline(result))
    assert len(fig.axes[0].lines) == 3
    plt.close(fig)
    fig = plot_wait_gantt([a.path for a in result.agents], labels=[f"A{a.id}" for a in result.agents])
    # agent 1: move, wait, move; agent 2: one move
    assert len(fig.axes[0].patches) == 4
    plt.close(fig)


def test_wait_move_segments() -> None:
    path = [(0, 0), (1, 0), (1, 0), (1, 0), (2, 0)]
    assert wait_move_segments(path) == [("move", 0, 1), ("wait", 1, 3), ("move", 3, 4)]
    assert wait_move_segments([(0, 0)]) == []


@pytest.mark.parametrize("field", ["closed_order", "expansions"])
def test_plot_explored_heatmap(field: str) -> None:
    grid = GridModel.from_flat([GROUND] * 16, 4, 4)
    _, footprint = astar_time_aware_with_footprint(grid, (0, 0), (3, 3))
    fig = plot_explored_heatmap(grid, footprint, field=field)
    assert len(fig.axes) == 2
    plt.close(fig)


def test_plot_explored_heatmap_unknown_field() -> None:
    grid = GridModel.from_flat([GROUND] * 4, 2, 2)
    _, footprint = astar_time_aware_with_footprint(grid, (0, 0), (1, 1))
    with pytest.raises(ValueError):
        plot_explored_heatmap(grid, footprint, field="h")

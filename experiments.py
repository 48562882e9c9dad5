"""
Strategy comparison experiments: plan the same agents under every strategy and
report success, path quality and residual conflicts side by side.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from conflicts import collision_counts_per_step, count_vertex_conflicts, find_swap_conflicts, list_collisions
from grid_planning import GridModel, count_waits, path_length
from map_layouts import BATTLE_MAP_DEMO, layout_to_grid
from multi_agent_planner import Agent, PlannerConfig, PlanningResult, Strategy, plan


def evaluate_plan(result: PlanningResult) -> Dict[str, object]:
    agents = result.agents
    lengths = [path_length(a.path) if a.found else None for a in agents]
    found_lengths = [l for l in lengths if l is not None]
    paths = [a.path for a in result.found_agents]
    goals = result.goals_for_step_table()
    shared_goal = sum(1 for ev in list_collisions(result.step_positions, goals) if not ev.is_conflict)
    return {
        "agents": len(agents),
        "found": len(found_lengths),
        "success_rate": len(found_lengths) / len(agents) if agents else 0.0,
        "lengths": lengths,
        "avg_len": sum(found_lengths) / len(found_lengths) if found_lengths else None,
        "sum_of_costs": sum(found_lengths),
        "makespan": max(result.total_steps - 1, 0),
        "total_waits": sum(count_waits(p) for p in paths),
        "vertex_conflicts": count_vertex_conflicts(result.step_positions, goals),
        "swap_conflicts": len(find_swap_conflicts(paths)),
        "shared_goal_events": shared_goal,
        "attempts": result.attempts,
        "iterations": result.stats.get("iterations", 0),
        "failures": {a.id: a.failure_reason for a in agents if not a.found},
    }


def conflict_timeline(result: PlanningResult) -> Dict[str, List[int]]:
    """Per-step counts of vertex conflicts, swaps (t -> t+1) and shared-goal arrivals."""
    table = result.step_positions
    goals = result.goals_for_step_table()
    ts = list(range(len(table)))
    verts = collision_counts_per_step(table, goals)
    edges = [0] * len(table)
    for ev in find_swap_conflicts([a.path for a in result.found_agents]):
        edges[ev["time"]] += 1
    shared = [0] * len(table)
    for ev in list_collisions(table, goals):
        if not ev.is_conflict:
            shared[ev.time] += len(ev.agents) - 1
    return {"t": ts, "vertex": verts, "edge": edges, "shared_goal": shared}


def compare_strategies(
    grid: GridModel,
    agents: Optional[Sequence[Agent]] = None,
    strategies: Optional[Sequence[Strategy]] = None,
    seed: Optional[int] = 13,
    base_config: Optional[PlannerConfig] = None,
) -> Dict[str, Dict[str, object]]:
    """Run ``plan`` once per strategy with a shared seed.

    With ``agents=None`` every run auto-derives agents from the grid.
    """
    base = base_config or PlannerConfig()
    out: Dict[str, Dict[str, object]] = {}
    for strategy in strategies or list(Strategy):
        strategy = Strategy.parse(strategy)
        config = replace(base, strategy=strategy, seed=seed, auto_setup=agents is None)
        result = plan(list(agents) if agents is not None else None, grid, config)
        out[strategy.value] = {"result": result, "metrics": evaluate_plan(result)}
    return out


def summary_table(comparison: Dict[str, Dict[str, object]]) -> Dict[str, Dict[str, object]]:
    out = {}
    for name, entry in comparison.items():
        m = entry["metrics"]
        out[name] = {
            "Outcome": entry["result"].outcome,
            "SuccessRate": m["success_rate"],
            "SoC": m["sum_of_costs"],
            "Makespan": m["makespan"],
            "AvgLen": m["avg_len"] if m["avg_len"] is not None else 0,
            "TotalWaits": m["total_waits"],
            "VertexConflicts": m["vertex_conflicts"],
            "SwapConflicts": m["swap_conflicts"],
            "Attempts": m["attempts"],
        }
    return out


def format_summary(table: Dict[str, Dict[str, object]]) -> str:
    if not table:
        return "(no runs)"
    columns = list(next(iter(table.values())).keys())
    header = f"{'strategy':<12}" + "".join(f"{c:>17}" for c in columns)
    lines = [header, "-" * len(header)]
    for name, row in table.items():
        cells = []
        for c in columns:
            v = row[c]
            cells.append(f"{v:>17.2f}" if isinstance(v, float) else f"{str(v):>17}")
        lines.append(f"{name:<12}" + "".join(cells))
    return "\n".join(lines)


def run_strategy_comparison(
    grid: Optional[GridModel] = None,
    agents: Optional[Sequence[Agent]] = None,
    strategies: Optional[Sequence[Strategy]] = None,
    seed: int = 13,
    make_plots: bool = False,
    make_gif: bool = False,
) -> Dict[str, Dict[str, object]]:
    """Compare every strategy on ``grid`` (the demo battle map by default) and print a report."""
    grid = grid or layout_to_grid(BATTLE_MAP_DEMO)
    comparison = compare_strategies(grid, agents, strategies, seed=seed)

    print("[Setup]")
    print("grid:", grid)
    print("seed:", seed)
    first = next(iter(comparison.values()))["result"]
    for a in first.agents:
        print(f"agent {a.id}: {a.start} -> {a.goal}")
    print()
    for name, entry in comparison.items():
        m = entry["metrics"]
        print(f"[{name}]")
        print("outcome:", entry["result"].outcome)
        print("success_rate:", m["success_rate"])
        print("avg_len:", m["avg_len"])
        print("vertex_conflicts:", m["vertex_conflicts"])
        print("swap_conflicts:", m["swap_conflicts"])
        if m["failures"]:
            print("failures:", m["failures"])
        print()
    print(format_summary(summary_table(comparison)))

    if make_plots or make_gif:
        import plan_viz

        for name, entry in comparison.items():
            result = entry["result"]
            if make_plots:
                plan_viz.plot_plan(grid, result, title=f"{name} (seed={seed})", show=True)
                plan_viz.plot_conflict_timeline(conflict_timeline(result), title=f"{name}: conflicts over time", show=True)
            if make_gif:
                plan_viz.animate_plan_gif(grid, result, out_gif=f"{name}_playback.gif", fps=1)
    return comparison


__all__ = [
    "evaluate_plan",
    "conflict_timeline",
    "compare_strategies",
    "summary_table",
    "format_summary",
    "run_strategy_comparison",
]

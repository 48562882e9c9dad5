"""Plan paths on a battle map from the command line.

Single-unit mode routes the map's first start to its first goal with A*, BFS
or DFS. Multi-unit mode pairs every start with a goal (or takes ``--agent``
specs) and resolves conflicts with the chosen strategy.

Usage:
    python run_planner.py battle_map.json --algorithm all --move-order uldr
    python run_planner.py battle_map.json --multi-unit --strategy cooperative --seed 7 --gif plan.gif
    python run_planner.py --preset battle_map_demo --multi-unit --strategy priority --priority 2=10
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from typing import Dict, List, Optional, Sequence, Tuple

from grid_planning import DEFAULT_MOVE_ORDER, SEARCHES, GridModel, describe_move_order, find_path, path_length, path_to_actions
from map_layouts import PRESETS, MapFormatError, get_preset, layout_to_grid, load_grid
from multi_agent_planner import (
    Agent,
    PlannerConfig,
    PlanningConfigError,
    PlanningResult,
    Strategy,
    describe_strategies,
    partial_result,
    plan,
)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_CONFIG = 2


def _priority_arg(text: str) -> Tuple[int, int]:
    try:
        agent_id, value = text.split("=", 1)
        return int(agent_id), int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected ID=VALUE, got {text!r}") from None


def _agent_arg(text: str) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    try:
        start, goal = text.split(":", 1)
        sx, sy = (int(v) for v in start.split(","))
        gx, gy = (int(v) for v in goal.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected SX,SY:GX,GY, got {text!r}") from None
    return (sx, sy), (gx, gy)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("map", nargs="?", help="Battle map (.json) or ASCII layout file")
    parser.add_argument("--preset", choices=sorted(PRESETS), help="Use a built-in layout instead of a file")
    parser.add_argument("--algorithm", default="astar", choices=sorted(SEARCHES) + ["all"], help="Single-unit search")
    parser.add_argument("--move-order", default=DEFAULT_MOVE_ORDER, help="Neighbour expansion order, e.g. rdlu or uldr")
    parser.add_argument("--multi-unit", action="store_true", help="Plan every start/goal pair together")
    parser.add_argument("--strategy", default=Strategy.SEQUENTIAL.value, help="sequential, priority, cooperative or wait")
    parser.add_argument("--agent", action="append", type=_agent_arg, default=[], metavar="SX,SY:GX,GY",
                        help="Explicit agent (repeatable); disables auto-setup")
    parser.add_argument("--priority", action="append", type=_priority_arg, default=[], metavar="ID=VALUE",
                        help="Priority override for one agent (repeatable)")
    parser.add_argument("--max-retries", type=int, default=3, help="Cooperative passes")
    parser.add_argument("--seed", type=int, default=None, help="Seed for Cooperative reshuffles")
    parser.add_argument("--no-wait", action="store_true", help="Forbid waiting in place during temporal search")
    parser.add_argument("--time-limit", type=float, default=None, help="Wall-clock budget in seconds")
    parser.add_argument("--show-steps", action="store_true", help="Print every time step of the plan")
    parser.add_argument("--list-strategies", action="store_true", help="Describe the strategies and exit")
    parser.add_argument("--json-out", default=None, help="Write the result as JSON")
    parser.add_argument("--plot", action="store_true", help="Show matplotlib figures")
    parser.add_argument("--gif", default=None, help="Write a GIF playback of the plan")
    parser.add_argument("--fps", type=int, default=2)
    parser.add_argument("--verbose", action="store_true")
    return parser


def _load(args: argparse.Namespace) -> GridModel:
    if args.preset:
        return layout_to_grid(get_preset(args.preset))
    return load_grid(args.map)


def _write_json(path: str, payload: Dict[str, object]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
    print(f"Saved JSON to: {path}")


def _plan_ascii(grid: GridModel, result: PlanningResult) -> str:
    """Map with each found path drawn by its agent id (``*`` where paths overlap)."""
    marks: Dict[Tuple[int, int], List[int]] = {}
    for agent in result.found_agents:
        for cell in agent.path:
            ids = marks.setdefault(tuple(cell), [])
            if agent.id not in ids:
                ids.append(agent.id)
    rows = grid.ascii().splitlines()
    out = []
    for y, row in enumerate(rows):
        chars = list(row)
        for x in range(grid.width):
            ids = marks.get((x, y))
            if ids and chars[x] not in ("S", "T"):
                chars[x] = str(ids[0] % 10) if len(ids) == 1 else "*"
        out.append("".join(chars))
    return "\n".join(out)


def run_single(grid: GridModel, args: argparse.Namespace) -> int:
    print("=" * 60)
    print("SINGLE-UNIT PATHFINDING MODE")
    print("=" * 60)
    starts, goals = grid.all_starts(), grid.all_goals()
    if not starts or not goals:
        print("Error: map needs at least one start and one goal", file=sys.stderr)
        return EXIT_CONFIG
    start, goal = starts[0], goals[0]
    print(f"Start: {start}  Goal: {goal}")
    algorithms = sorted(SEARCHES) if args.algorithm == "all" else [args.algorithm]
    found: Dict[str, Optional[List[Tuple[int, int]]]] = {}
    for name in algorithms:
        t0 = time.perf_counter()
        path = find_path(grid, start, goal, algorithm=name, move_order=args.move_order)
        elapsed_us = (time.perf_counter() - t0) * 1e6
        print(f"\n--- {name} ---")
        print(f"Execution time: {elapsed_us:.0f} microseconds")
        if path:
            print(f"Path length: {path_length(path)} moves")
            print("Actions:", " ".join(path_to_actions(path)))
            print(grid.ascii(path))
        else:
            print("No path found!")
        found[name] = [list(c) for c in path] if path else None

    if len(algorithms) > 1:
        print("\n=== Algorithm Comparison ===")
        for name, path in found.items():
            print(f"{name} path length: {len(path) - 1 if path else 'NO PATH FOUND'}")
    if args.json_out:
        _write_json(args.json_out, {"start": list(start), "goal": list(goal), "move_order": args.move_order, "paths": found})
    if args.plot:
        import plan_viz

        for name, path in found.items():
            plan_viz.plot_path(grid, path, title=f"{name} ({args.move_order})", show=True)
    return EXIT_OK if any(found.values()) else EXIT_PARTIAL


def run_multi(grid: GridModel, args: argparse.Namespace) -> int:
    print("=" * 60)
    print("MULTI-UNIT PATHFINDING MODE")
    print("=" * 60)
    agents = [Agent(id=i + 1, start=s, goal=g) for i, (s, g) in enumerate(args.agent)]
    config = PlannerConfig(
        strategy=args.strategy,
        priorities=dict(args.priority),
        max_retries=args.max_retries,
        auto_setup=not agents,
        seed=args.seed,
        move_order=args.move_order,
        allow_wait=not args.no_wait,
        time_limit_s=args.time_limit,
        verbose=args.verbose,
    )
    print(f"Strategy: {config.strategy.value}")
    t0 = time.perf_counter()
    result = plan(agents or None, grid, config)
    print(f"Planning time: {(time.perf_counter() - t0) * 1e3:.1f} ms")

    for agent in result.agents:
        if agent.found:
            print(f"Agent {agent.id}: {agent.start} -> {agent.goal} | {len(agent.path)} cells")
        else:
            print(f"Agent {agent.id}: {agent.start} -> {agent.goal} | NOT FOUND ({agent.failure_reason})")
    print(f"\nOutcome: {result.outcome} ({result.success_count}/{len(result.agents)} agents, "
          f"{result.total_steps} steps, {result.attempts} attempt(s))")
    conflicts = result.conflict_entries()
    if conflicts:
        print(f"Residual conflicts: {len(conflicts)}")

    shown = result if result.all_paths_found else partial_result(result)
    if shown.found_agents:
        if not result.all_paths_found:
            print("Note: showing paths for agents that succeeded (partial result)")
        print(_plan_ascii(grid, shown))
        if args.show_steps:
            for t, row in enumerate(shown.step_positions):
                print(f"t={t}: " + "  ".join(f"{a.id}@{c}" for a, c in zip(shown.found_agents, row)))
    else:
        print("None of the agents could find a path to their goals.")

    if args.json_out:
        _write_json(args.json_out, result.to_dict())
    if args.plot or args.gif:
        import plan_viz

        if args.plot:
            plan_viz.plot_plan(grid, result, show=True)
        if args.gif and shown.found_agents:
            plan_viz.animate_plan_gif(grid, shown, out_gif=args.gif, fps=args.fps)
    return EXIT_OK if result.all_paths_found else EXIT_PARTIAL


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.list_strategies:
        print(describe_strategies())
        return EXIT_OK
    if not args.map and not args.preset:
        parser.error("a map file or --preset is required")

    try:
        print(f"Move order: {describe_move_order(args.move_order)}")
        grid = _load(args)
        print(f"Loaded {grid}")
        counts = grid.count_terrain()
        print(", ".join(f"{k}={counts[k]}" for k in ("ground", "elevated", "start", "goal", "custom")))
        if args.multi_unit:
            return run_multi(grid, args)
        return run_single(grid, args)
    except (PlanningConfigError, MapFormatError, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())

"""
Multi-agent scheduler: four conflict-resolution strategies over temporal A*.

Every strategy plans agents one at a time against a shared reservation table,
committing each successful path before the next search, and returns a
PlanningResult. Agents that cannot be routed are reported as not found rather
than aborting the batch; only configuration problems raise.
"""

from __future__ import annotations

import random
import time
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from conflicts import Collision, find_collisions, list_collisions
from grid_planning import DEFAULT_MOVE_ORDER, Cell, GridModel, Path, as_cell, astar, manhattan, parse_move_order
from temporal_planning import DEFAULT_ITERATION_FACTOR, TemporalOccupancy, astar_time_aware_with_footprint

LOG_TAIL = 50


class Strategy(str, Enum):
    SEQUENTIAL = "sequential"
    PRIORITY_BASED = "priority"
    COOPERATIVE = "cooperative"
    WAIT_AND_RETRY = "wait"

    @classmethod
    def parse(cls, value: "Strategy | str") -> "Strategy":
        if isinstance(value, Strategy):
            return value
        key = str(value).strip().lower().replace("-", "_")
        aliases = {
            "sequential": cls.SEQUENTIAL,
            "priority": cls.PRIORITY_BASED,
            "priority_based": cls.PRIORITY_BASED,
            "cooperative": cls.COOPERATIVE,
            "wait": cls.WAIT_AND_RETRY,
            "wait_and_retry": cls.WAIT_AND_RETRY,
        }
        if key not in aliases:
            raise PlanningConfigError(f"Unknown strategy {value!r}; choose from sequential, priority, cooperative, wait")
        return aliases[key]


STRATEGY_DESCRIPTIONS = {
    Strategy.SEQUENTIAL: "Find paths one by one; later agents avoid the reservations of earlier ones",
    Strategy.PRIORITY_BASED: "Process agents by descending priority, then plan sequentially",
    Strategy.COOPERATIVE: "Repeat sequential passes with shuffled orderings until every agent succeeds",
    Strategy.WAIT_AND_RETRY: "Plan sequentially, then insert wait steps where residual conflicts remain",
}


def describe_strategies() -> str:
    lines = ["Available conflict resolution strategies:"]
    for idx, strategy in enumerate(Strategy, start=1):
        lines.append(f"{idx}. {strategy.name:<15} ({strategy.value}) - {STRATEGY_DESCRIPTIONS[strategy]}")
    return "\n".join(lines)


class PlanningConfigError(ValueError):
    """Raised for problems that prevent any search from starting."""


@dataclass
class Agent:
    id: int
    start: Cell
    goal: Cell
    priority: int = 0
    path: Path = field(default_factory=list)
    found: bool = False
    failure_reason: Optional[str] = None

    def __post_init__(self) -> None:
        self.start = as_cell(self.start)
        self.goal = as_cell(self.goal)
        self.path = [as_cell(c) for c in self.path]

    def fresh(self, priority: Optional[int] = None) -> "Agent":
        """Copy with the planning outcome cleared."""
        return replace(
            self,
            priority=self.priority if priority is None else priority,
            path=[],
            found=False,
            failure_reason=None,
        )

    @property
    def distance(self) -> int:
        return manhattan(self.start, self.goal)


@dataclass(frozen=True)
class PlannerConfig:
    strategy: Strategy = Strategy.SEQUENTIAL
    priorities: Mapping[int, int] = field(default_factory=dict)
    max_retries: int = 3
    auto_setup: bool = False
    seed: Optional[int] = None
    iteration_factor: int = DEFAULT_ITERATION_FACTOR
    move_order: str = DEFAULT_MOVE_ORDER
    allow_wait: bool = True
    diagnose_failures: bool = True
    time_limit_s: Optional[float] = None
    verbose: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategy", Strategy.parse(self.strategy))
        object.__setattr__(self, "priorities", dict(self.priorities))
        if self.max_retries < 1:
            raise PlanningConfigError("max_retries must be at least 1")
        if self.iteration_factor < 1:
            raise PlanningConfigError("iteration_factor must be at least 1")
        if self.time_limit_s is not None and self.time_limit_s <= 0:
            raise PlanningConfigError("time_limit_s must be positive")
        try:
            parse_move_order(self.move_order)
        except ValueError as exc:
            raise PlanningConfigError(str(exc)) from exc

    def priority_of(self, agent: Agent) -> int:
        return self.priorities.get(agent.id, agent.priority)


@dataclass(frozen=True)
class PlanningResult:
    agents: Tuple[Agent, ...]
    all_paths_found: bool
    total_steps: int
    step_positions: Tuple[Tuple[Cell, ...], ...]
    strategy: Strategy = Strategy.SEQUENTIAL
    attempts: int = 1
    stats: Dict[str, object] = field(default_factory=dict)

    @property
    def outcome(self) -> str:
        return "resolved" if self.all_paths_found else "partially_resolved"

    @property
    def found_agents(self) -> List[Agent]:
        return [a for a in self.agents if a.found]

    @property
    def success_count(self) -> int:
        return len(self.found_agents)

    def goals_for_step_table(self) -> List[Cell]:
        """Goals aligned with the columns of ``step_positions``."""
        return [a.goal for a in self.found_agents]

    def collisions(self) -> List[Collision]:
        return list_collisions(self.step_positions, self.goals_for_step_table())

    def conflict_entries(self) -> List[Tuple[int, int]]:
        return find_collisions(self.step_positions, self.goals_for_step_table())

    def is_conflict_free(self) -> bool:
        return self.all_paths_found and not self.conflict_entries()

    def to_dict(self) -> Dict[str, object]:
        return {
            "strategy": self.strategy.value,
            "outcome": self.outcome,
            "all_paths_found": self.all_paths_found,
            "total_steps": self.total_steps,
            "attempts": self.attempts,
            "agents": [
                {
                    "id": a.id,
                    "start": list(a.start),
                    "goal": list(a.goal),
                    "priority": a.priority,
                    "found": a.found,
                    "failure_reason": a.failure_reason,
                    "path": [list(c) for c in a.path],
                }
                for a in self.agents
            ],
            "step_positions": [[list(c) for c in row] for row in self.step_positions],
            "collisions": [
                {"time": ev.time, "cell": list(ev.cell), "agents": list(ev.agents), "kind": ev.kind}
                for ev in self.collisions()
            ],
            "stats": dict(self.stats),
        }


def generate_step_positions(agents: Sequence[Agent]) -> List[List[Cell]]:
    """Transpose found agents' paths into per-step rows, holding finished agents on their last cell."""
    paths = [list(a.path) for a in agents if a.found and a.path]
    if not paths:
        return []
    max_len = max(len(p) for p in paths)
    for p in paths:
        p.extend([p[-1]] * (max_len - len(p)))
    return [[p[t] for p in paths] for t in range(max_len)]


def derive_distance_priorities(agents: Sequence[Agent], grid: GridModel) -> Dict[int, int]:
    """Shorter trips get higher priority: ``(width + height) - manhattan(start, goal)``."""
    max_distance = grid.width + grid.height
    return {a.id: max_distance - a.distance for a in agents}


def auto_setup_agents(grid: GridModel, verbose: bool = False) -> List[Agent]:
    """Pair the grid's start and goal cells into agents with ids from 1.

    Equal counts pair by index; surplus starts cycle through the goals;
    surplus goals are ignored.
    """
    if grid is None:
        raise PlanningConfigError("No map loaded")
    starts, goals = grid.all_starts(), grid.all_goals()
    if not starts or not goals:
        raise PlanningConfigError(
            f"Need at least one start and one goal cell (found {len(starts)} starts, {len(goals)} goals)"
        )
    agents = [Agent(id=i + 1, start=start, goal=goals[i % len(goals)]) for i, start in enumerate(starts)]
    priorities = derive_distance_priorities(agents, grid)
    for agent in agents:
        agent.priority = priorities[agent.id]
        if verbose:
            print(f"Agent {agent.id}: {agent.start} -> {agent.goal} | distance {agent.distance} | priority {agent.priority}")
    return agents


class _PlanRun:
    """State owned by one ``plan`` invocation: grid, config, reservations and stats."""

    def __init__(self, grid: GridModel, config: PlannerConfig) -> None:
        self.grid = grid
        self.config = config
        self.occupancy = TemporalOccupancy()
        self.deadline = None if config.time_limit_s is None else time.perf_counter() + config.time_limit_s
        self.stats: Dict[str, object] = {
            "searches": 0,
            "iterations": 0,
            "failed_searches": 0,
            "wait_insertions": 0,
            "log": deque(maxlen=LOG_TAIL),
        }

    def log(self, msg: str) -> None:
        if self.config.verbose:
            print(msg)
        self.stats["log"].append(msg)

    def deadline_passed(self) -> bool:
        return self.deadline is not None and time.perf_counter() > self.deadline

    def plan_agent(self, agent: Agent, t_start: int = 0) -> None:
        grid = self.grid
        if self.deadline_passed():
            agent.failure_reason = "deadline"
            self.log(f"Agent {agent.id}: skipped, time limit reached")
            return
        if not (grid.is_in_bounds(agent.start) and grid.is_in_bounds(agent.goal)):
            agent.failure_reason = "invalid_position"
            self.log(f"Agent {agent.id}: start {agent.start} or goal {agent.goal} out of bounds")
            return
        if not grid.is_traversable(agent.start):
            agent.failure_reason = "start_blocked"
            self.log(f"Agent {agent.id}: start {agent.start} is not traversable")
            return
        if not grid.is_traversable(agent.goal):
            agent.failure_reason = "goal_blocked"
            self.log(f"Agent {agent.id}: goal {agent.goal} is not traversable")
            return
        if agent.start == agent.goal:
            agent.path = [agent.start]
            agent.found = True
            self.occupancy.reserve(agent.path, t_start)
            self.log(f"Agent {agent.id}: already at goal {agent.goal}")
            return

        path, footprint = astar_time_aware_with_footprint(
            grid,
            agent.start,
            agent.goal,
            self.occupancy,
            t_start=t_start,
            allow_wait=self.config.allow_wait,
            move_order=self.config.move_order,
            iteration_factor=self.config.iteration_factor,
            deadline=self.deadline,
        )
        self.stats["searches"] += 1
        self.stats["iterations"] += int(footprint["iterations"])
        if path:
            agent.path = path
            agent.found = True
            self.occupancy.reserve(path, t_start)
            self.log(
                f"Agent {agent.id}: path found ({len(path)} cells) after {footprint['iterations']} iterations, "
                f"arrives at t={footprint['final_time']}"
            )
            return

        self.stats["failed_searches"] += 1
        if footprint["reason"] == "deadline":
            agent.failure_reason = "deadline"
        elif self.config.diagnose_failures:
            fallback = astar(grid, agent.start, agent.goal, move_order=self.config.move_order)
            agent.failure_reason = "blocked_by_agents" if fallback else "unreachable"
        else:
            agent.failure_reason = "no_path"
        self.log(
            f"Agent {agent.id}: no path after {footprint['iterations']} iterations "
            f"({footprint['reason']}; {agent.failure_reason})"
        )

    def sequential_pass(self, agents: Sequence[Agent]) -> List[Agent]:
        self.occupancy.clear()
        planned = [a.fresh() for a in agents]
        for agent in planned:
            self.log(f"Processing agent {agent.id}: {agent.start} -> {agent.goal}")
            self.plan_agent(agent)
        return planned

    def finish_stats(self) -> Dict[str, object]:
        out = dict(self.stats)
        out["log_tail"] = list(out.pop("log"))
        return out


def _plan_sequential(run: _PlanRun, agents: Sequence[Agent], rng: random.Random) -> Tuple[List[Agent], int]:
    return run.sequential_pass(agents), 1


def _plan_priority_based(run: _PlanRun, agents: Sequence[Agent], rng: random.Random) -> Tuple[List[Agent], int]:
    ranked = [a.fresh(priority=run.config.priority_of(a)) for a in agents]
    # sorted() is stable, so equal priorities keep their given order
    ranked = sorted(ranked, key=lambda a: -a.priority)
    run.log("Processing order: " + ", ".join(f"{a.id}(p={a.priority})" for a in ranked))
    return run.sequential_pass(ranked), 1


def _plan_cooperative(run: _PlanRun, agents: Sequence[Agent], rng: random.Random) -> Tuple[List[Agent], int]:
    order = list(agents)
    planned: List[Agent] = []
    attempts = 0
    for attempt in range(run.config.max_retries):
        if attempt > 0:
            rng.shuffle(order)
        attempts = attempt + 1
        run.log(f"Attempt {attempts}/{run.config.max_retries}: order " + ", ".join(str(a.id) for a in order))
        planned = run.sequential_pass(order)
        if all(a.found for a in planned):
            break
        if run.deadline_passed():
            break
    return planned, attempts


def _plan_wait_and_retry(run: _PlanRun, agents: Sequence[Agent], rng: random.Random) -> Tuple[List[Agent], int]:
    planned = run.sequential_pass(agents)
    if not all(a.found for a in planned):
        return planned, 1
    table = generate_step_positions(planned)
    conflicts = find_collisions(table, [a.goal for a in planned])
    if not conflicts:
        return planned, 1
    run.log(f"Detected {len(conflicts)} conflicts, inserting wait steps")
    # one corrective pass, one wait per entry; indices refer to the paths before insertion
    for t, idx in conflicts:
        path = planned[idx].path
        if 0 < t < len(path):
            path.insert(t, path[t - 1])
            run.stats["wait_insertions"] += 1
            run.log(f"Agent {planned[idx].id}: wait inserted at t={t} on {path[t]}")
    return planned, 1


_STRATEGIES: Dict[Strategy, Callable[[_PlanRun, Sequence[Agent], random.Random], Tuple[List[Agent], int]]] = {
    Strategy.SEQUENTIAL: _plan_sequential,
    Strategy.PRIORITY_BASED: _plan_priority_based,
    Strategy.COOPERATIVE: _plan_cooperative,
    Strategy.WAIT_AND_RETRY: _plan_wait_and_retry,
}


def build_result(
    agents: Sequence[Agent],
    strategy: Strategy,
    attempts: int = 1,
    stats: Optional[Dict[str, object]] = None,
) -> PlanningResult:
    table = generate_step_positions(agents)
    return PlanningResult(
        agents=tuple(agents),
        all_paths_found=bool(agents) and all(a.found for a in agents),
        total_steps=len(table),
        step_positions=tuple(tuple(row) for row in table),
        strategy=strategy,
        attempts=attempts,
        stats=stats or {},
    )


def plan(
    agents: Optional[Sequence[Agent]],
    grid: Optional[GridModel],
    config: Optional[PlannerConfig] = None,
    rng: Optional[random.Random] = None,
) -> PlanningResult:
    """Plan every agent on ``grid`` with the strategy named in ``config``.

    ``rng`` drives the Cooperative shuffles; it defaults to
    ``random.Random(config.seed)``, which is non-deterministic when no seed is
    set. Raises PlanningConfigError when no search can start.
    """
    config = config or PlannerConfig()
    if grid is None:
        raise PlanningConfigError("No map loaded")
    if config.auto_setup:
        if agents:
            raise PlanningConfigError("auto_setup derives agents from the grid; do not pass agents as well")
        agents = auto_setup_agents(grid, verbose=config.verbose)
    if not agents:
        raise PlanningConfigError("No agents to find paths for")
    ids = [a.id for a in agents]
    if len(set(ids)) != len(ids):
        raise PlanningConfigError(f"Agent ids must be unique, got {ids}")

    run = _PlanRun(grid, config)
    rng = rng if rng is not None else random.Random(config.seed)
    run.log(f"Multi-agent planning: {len(agents)} agents, strategy {config.strategy.value}")
    planned, attempts = _STRATEGIES[config.strategy](run, agents, rng)

    found = sum(1 for a in planned if a.found)
    run.log(f"Summary: {found}/{len(planned)} agents found paths, {len(planned) - found} failed")
    return build_result(planned, config.strategy, attempts=attempts, stats=run.finish_stats())


def partial_result(result: PlanningResult) -> PlanningResult:
    """Result restricted to the agents that found a path, for display of a partially resolved plan."""
    kept = [replace(a, path=list(a.path)) for a in result.found_agents]
    partial = build_result(kept, result.strategy, attempts=result.attempts, stats=dict(result.stats))
    return replace(partial, all_paths_found=result.all_paths_found)


__all__ = [
    "Strategy",
    "STRATEGY_DESCRIPTIONS",
    "describe_strategies",
    "PlanningConfigError",
    "Agent",
    "PlannerConfig",
    "PlanningResult",
    "generate_step_positions",
    "derive_distance_priorities",
    "auto_setup_agents",
    "build_result",
    "plan",
    "partial_result",
]

"""Tests for residual-conflict detection over step tables."""

from __future__ import annotations

from conflicts import (
    CONFLICT,
    SHARED_GOAL,
    Collision,
    collision_counts_per_step,
    count_vertex_conflicts,
    find_collisions,
    find_swap_conflicts,
    has_collision,
    list_collisions,
)
from grid_planning import Cell


def test_empty_table_has_no_collisions() -> None:
    assert find_collisions([]) == []
    assert not has_collision([], 0)


def test_two_agents_on_one_cell() -> None:
    table = [
        [(0, 0), (2, 0)],
        [(1, 0), (1, 0)],
        [(2, 0), (0, 0)],
    ]
    assert find_collisions(table) == [(1, 0)]
    assert has_collision(table, 1)
    assert not has_collision(table, 0)
    assert not has_collision(table, 3)
    assert not has_collision(table, -1)


def test_one_entry_per_colliding_pair() -> None:
    table = [[(1, 1), (1, 1), (1, 1), (0, 0)]]
    assert find_collisions(table) == [(0, 0), (0, 0), (0, 1)]
    assert count_vertex_conflicts(table) == 2


def test_shared_goal_arrivals_are_benign() -> None:
    table = [
        [(0, 0), (2, 0)],
        [(1, 0), (1, 0)],
    ]
    goals = [(1, 0), (1, 0)]
    assert find_collisions(table, goals) == []
    assert not has_collision(table, 1, goals)
    assert find_collisions(table) == [(1, 0)]
    events = list_collisions(table, goals)
    assert events == [Collision(time=1, cell=Cell(1, 0), agents=(0, 1), kind=SHARED_GOAL)]
    assert not events[0].is_conflict


def test_passing_through_a_parked_agent_is_a_conflict() -> None:
    table = [
        [(0, 0), (1, 0)],
        [(1, 0), (1, 0)],
        [(2, 0), (1, 0)],
    ]
    goals = [(2, 0), (1, 0)]
    assert find_collisions(table, goals) == [(1, 0)]
    kinds = [ev.kind for ev in list_collisions(table, goals)]
    assert kinds == [CONFLICT]


def test_collision_counts_per_step() -> None:
    table = [
        [(0, 0), (0, 0), (0, 0)],
        [(0, 1), (1, 1), (2, 1)],
        [(1, 1), (1, 1), (2, 1)],
    ]
    assert collision_counts_per_step(table) == [2, 0, 1]


def test_swap_is_reported() -> None:
    paths = [
        [(0, 0), (1, 0), (2, 0)],
        [(2, 0), (2, 0), (1, 0), (0, 0)],
    ]
    swaps = find_swap_conflicts(paths)
    assert swaps == [{"type": "swap", "time": 1, "edge": (Cell(1, 0), Cell(2, 0)), "agents": (0, 1)}]


def test_swap_ignores_missing_paths_and_waits() -> None:
    paths = [None, [(0, 0), (0, 0)], [(1, 0), (1, 0)]]
    assert find_swap_conflicts(paths) == []


def test_three_agents_parked_on_their_shared_goal() -> None:
    table = [
        [(0, 0), (2, 2), (0, 2)],
        [(1, 1), (1, 1), (1, 1)],
    ]
    goals = [(1, 1)] * 3
    assert find_collisions(table, goals) == []
    assert count_vertex_conflicts(table, goals) == 0
    assert collision_counts_per_step(table, goals) == [0, 0]

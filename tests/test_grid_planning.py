"""Tests for the grid model and the plain single-agent searches."""

from __future__ import annotations

import pytest

from grid_planning import (
    ELEVATED,
    GOAL,
    GROUND,
    START,
    Cell,
    GridModel,
    astar,
    bfs,
    count_waits,
    describe_move_order,
    dfs,
    find_path,
    manhattan,
    parse_move_order,
    path_length,
    path_to_actions,
    validate_path,
)

G, E, S, T = GROUND, ELEVATED, START, GOAL


def open_grid(width: int, height: int) -> GridModel:
    return GridModel.from_flat([GROUND] * (width * height), width, height)


def test_cell_orders_by_column_then_row() -> None:
    cells = [Cell(1, 0), Cell(0, 2), Cell(0, 1)]
    assert sorted(cells) == [Cell(0, 1), Cell(0, 2), Cell(1, 0)]
    assert str(Cell(3, 4)) == "(3,4)"


def test_from_flat_rejects_size_mismatch() -> None:
    with pytest.raises(ValueError, match="doesn't match"):
        GridModel.from_flat([G] * 5, 2, 3)


def test_from_rows_rejects_ragged_rows() -> None:
    with pytest.raises(ValueError):
        GridModel.from_rows([[G, G], [G]])


def test_starts_and_goals_are_scanned_row_by_row() -> None:
    grid = GridModel.from_rows(
        [
            [G, S, T],
            [S, E, G],
            [T, G, S],
        ]
    )
    assert grid.all_starts() == (Cell(1, 0), Cell(0, 1), Cell(2, 2))
    assert grid.all_goals() == (Cell(2, 0), Cell(0, 2))
    assert grid.width == 3 and grid.height == 3


def test_terrain_is_read_only() -> None:
    grid = open_grid(2, 2)
    with pytest.raises(ValueError):
        grid.terrain[0, 0] = ELEVATED


def test_traversability_and_custom_terrain() -> None:
    grid = GridModel.from_rows([[G, E, 5, S, T]])
    assert grid.is_traversable((0, 0))
    assert not grid.is_traversable((1, 0))
    assert not grid.is_traversable((2, 0))
    assert grid.is_traversable((3, 0)) and grid.is_traversable((4, 0))
    assert not grid.is_traversable((5, 0))
    assert grid.terrain_at((9, 9)) is None

    whitelisted = GridModel.from_rows([[G, E, 5]], extra_traversable=[5])
    assert whitelisted.is_traversable((2, 0))


def test_count_terrain() -> None:
    grid = GridModel.from_rows([[G, E, 5], [S, T, G]])
    counts = grid.count_terrain()
    assert counts == {"ground": 2, "start": 1, "goal": 1, "elevated": 1, "custom": 1, "total": 6}


def test_neighbors_follow_move_order() -> None:
    grid = open_grid(3, 3)
    assert list(grid.neighbors((1, 1))) == [Cell(2, 1), Cell(1, 2), Cell(0, 1), Cell(1, 0)]
    assert list(grid.neighbors((1, 1), "uldr")) == [Cell(1, 0), Cell(0, 1), Cell(1, 2), Cell(2, 1)]
    assert list(grid.neighbors((0, 0))) == [Cell(1, 0), Cell(0, 1)]


@pytest.mark.parametrize("order", ["rdl", "rdlx", "rrdl", "", "rdlur"])
def test_invalid_move_orders_are_rejected(order: str) -> None:
    with pytest.raises(ValueError):
        parse_move_order(order)


def test_move_order_is_case_insensitive() -> None:
    assert parse_move_order("ULDR") == [(0, -1), (-1, 0), (0, 1), (1, 0)]
    assert describe_move_order("rdlu") == "Right -> Down -> Left -> Up"


def test_with_endpoints_replaces_markers() -> None:
    grid = GridModel.from_rows([[S, G, T], [G, E, G]])
    moved = grid.with_endpoints((0, 1), (2, 1))
    assert moved.all_starts() == (Cell(0, 1),)
    assert moved.all_goals() == (Cell(2, 1),)
    assert moved.terrain_at((0, 0)) == GROUND
    assert grid.all_starts() == (Cell(0, 0),)


@pytest.mark.parametrize("search", [astar, bfs])
def test_shortest_searches_on_open_field(search) -> None:
    grid = open_grid(5, 5)
    path = search(grid, (0, 0), (4, 4))
    assert len(path) == 9
    assert path[0] == Cell(0, 0) and path[-1] == Cell(4, 4)
    assert validate_path(path, grid)


def test_dfs_finds_a_valid_path() -> None:
    grid = open_grid(4, 3)
    path = dfs(grid, (0, 0), (3, 2))
    assert path[0] == Cell(0, 0) and path[-1] == Cell(3, 2)
    assert validate_path(path, grid)
    assert len(path) >= manhattan((0, 0), (3, 2)) + 1


@pytest.mark.parametrize("algorithm", ["astar", "bfs", "dfs"])
def test_searches_return_empty_when_walled_off(algorithm: str) -> None:
    grid = GridModel.from_rows(
        [
            [G, E, G],
            [G, E, G],
            [G, E, G],
        ]
    )
    assert find_path(grid, (0, 0), (2, 2), algorithm=algorithm) == []


@pytest.mark.parametrize("algorithm", ["astar", "bfs", "dfs"])
def test_searches_reject_blocked_or_out_of_bounds_endpoints(algorithm: str) -> None:
    grid = GridModel.from_rows([[G, E, G]])
    assert find_path(grid, (1, 0), (2, 0), algorithm=algorithm) == []
    assert find_path(grid, (0, 0), (7, 0), algorithm=algorithm) == []


def test_astar_detours_around_a_wall() -> None:
    grid = GridModel.from_rows(
        [
            [G, G, G],
            [E, E, G],
            [G, G, G],
        ]
    )
    path = astar(grid, (0, 0), (0, 2))
    assert len(path) == 7
    assert validate_path(path, grid)


def test_find_path_unknown_algorithm() -> None:
    with pytest.raises(ValueError, match="Unknown algorithm"):
        find_path(open_grid(2, 2), (0, 0), (1, 1), algorithm="dijkstra")


def test_validate_path_wait_handling() -> None:
    grid = open_grid(3, 1)
    waiting = [(0, 0), (0, 0), (1, 0)]
    assert not validate_path(waiting, grid)
    assert validate_path(waiting, grid, allow_wait=True)
    assert not validate_path([(0, 0), (2, 0)], grid, allow_wait=True)
    assert not validate_path([], grid)


def test_path_helpers() -> None:
    path = [Cell(0, 0), Cell(1, 0), Cell(1, 1), Cell(1, 1), Cell(0, 1), Cell(0, 0)]
    assert path_to_actions(path) == ["R", "D", "WAIT", "L", "U"]
    assert count_waits(path) == 1
    assert path_length(path) == 5
    assert path_length([]) is None
    assert path_to_actions([Cell(0, 0)]) == []


def test_ascii_marks_path() -> None:
    grid = GridModel.from_rows([[S, G, T], [G, E, G]])
    assert grid.ascii([(0, 0), (1, 0), (2, 0)]) == "S*T\n.#."

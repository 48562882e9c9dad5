"""Tests for the command line entry point."""

from __future__ import annotations

import json
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pytest  # noqa: E402

from run_planner import EXIT_CONFIG, EXIT_OK, EXIT_PARTIAL, main  # noqa: E402


def write_map(tmp_path: Path, *rows: str) -> str:
    path = tmp_path / "map.txt"
    path.write_text("\n".join(rows) + "\n", encoding="utf-8")
    return str(path)


def test_list_strategies(capsys) -> None:
    assert main(["--list-strategies"]) == EXIT_OK
    assert "cooperative" in capsys.readouterr().out


def test_map_is_required() -> None:
    with pytest.raises(SystemExit):
        main([])


def test_single_unit_all_algorithms(capsys) -> None:
    assert main(["--preset", "open_field_5x5", "--algorithm", "all"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "SINGLE-UNIT PATHFINDING MODE" in out
    assert "Algorithm Comparison" in out
    assert "astar path length: 8" in out
    assert "bfs path length: 8" in out


def test_single_unit_json(tmp_path: Path) -> None:
    out = tmp_path / "single.json"
    assert main(["--preset", "corridor_5x1", "--json-out", str(out)]) == EXIT_OK
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["paths"]["astar"] == [[0, 0], [1, 0], [2, 0], [3, 0], [4, 0]]


def test_single_unit_without_path(tmp_path: Path, capsys) -> None:
    assert main([write_map(tmp_path, "S.#T")]) == EXIT_PARTIAL
    assert "No path found!" in capsys.readouterr().out


def test_multi_unit_resolved(tmp_path: Path, capsys) -> None:
    out = tmp_path / "plan.json"
    code = main(["--preset", "battle_map_demo", "--multi-unit", "--strategy", "priority", "--json-out", str(out)])
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["strategy"] == "priority"
    assert len(payload["agents"]) == 3
    assert code == (EXIT_OK if payload["all_paths_found"] else EXIT_PARTIAL)
    assert "MULTI-UNIT PATHFINDING MODE" in capsys.readouterr().out


def test_multi_unit_partial(tmp_path: Path, capsys) -> None:
    path = write_map(tmp_path, "S.#T", "..##", "S..T")
    assert main([path, "--multi-unit", "--show-steps"]) == EXIT_PARTIAL
    out = capsys.readouterr().out
    assert "NOT FOUND (unreachable)" in out
    assert "partial result" in out
    assert "t=0:" in out


def test_explicit_agents_and_priorities(tmp_path: Path) -> None:
    out = tmp_path / "plan.json"
    args = [
        "--preset", "corridor_5x1", "--multi-unit", "--strategy", "priority",
        "--agent", "0,0:4,0", "--agent", "4,0:0,0", "--priority", "2=10",
        "--json-out", str(out),
    ]
    assert main(args) == EXIT_OK
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert [a["id"] for a in payload["agents"]] == [2, 1]
    assert payload["agents"][0]["path"] == [[4, 0], [3, 0], [2, 0], [1, 0], [0, 0]]


def test_multi_unit_gif(tmp_path: Path) -> None:
    gif = tmp_path / "plan.gif"
    assert main(["--preset", "corridor_5x1", "--multi-unit", "--gif", str(gif), "--fps", "4"]) == EXIT_OK
    assert gif.exists()


@pytest.mark.parametrize(
    "args",
    [
        ["--preset", "open_field_5x5", "--move-order", "rdlx"],
        ["--preset", "open_field_5x5", "--multi-unit", "--strategy", "annealing"],
        ["--preset", "open_field_5x5", "--multi-unit", "--max-retries", "0"],
        ["does_not_exist.json"],
    ],
)
def test_configuration_errors_exit_with_status_2(args, capsys) -> None:
    assert main(args) == EXIT_CONFIG
    assert "Error:" in capsys.readouterr().err


def test_malformed_battle_map(tmp_path: Path, capsys) -> None:
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"canvas": {"width": 10, "height": 10}}), encoding="utf-8")
    assert main([str(path)]) == EXIT_CONFIG
    assert "missing required fields" in capsys.readouterr().err


def test_bad_priority_argument() -> None:
    with pytest.raises(SystemExit):
        main(["--preset", "open_field_5x5", "--multi-unit", "--priority", "two"])

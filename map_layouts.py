"""
Map sources for the planner: ASCII layout presets and the JSON battle-map format.

ASCII characters: ``.`` ground, ``#`` elevated, ``S`` start, ``T`` goal, and a
digit for any other terrain code (custom terrain, blocked unless whitelisted).
A letter named in the layout legend is custom terrain too, with code
``LETTER_CODE_BASE + ord(letter)``. ASCII files declare legend entries in
comment lines such as ``; w = water``.

A battle map is a JSON document with a ``canvas`` in pixels, a list of
``tilesets`` and a list of ``layers`` whose ``data`` is the row-major terrain.
Layer dimensions are ``canvas / tile size`` of the layer's tileset.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path as FsPath
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from grid_planning import ELEVATED, GOAL, GROUND, START, GridModel


class MapFormatError(ValueError):
    """Raised when a layout or battle-map document is malformed."""


CHAR_CODES: Dict[str, int] = {".": GROUND, "#": ELEVATED, "S": START, "T": GOAL}
CODE_CHARS: Dict[int, str] = {code: ch for ch, code in CHAR_CODES.items()}
LETTER_CODE_BASE = 100


@dataclass(frozen=True)
class LayoutConfig:
    size: Tuple[int, int]
    ascii_rows: Sequence[str]
    legend: Dict[str, str] = field(default_factory=dict)


OPEN_FIELD_5X5 = LayoutConfig(
    size=(5, 5),
    ascii_rows=(
        "S....",
        ".....",
        ".....",
        ".....",
        "....T",
    ),
    legend={".": "ground", "S": "start", "T": "goal"},
)

CORRIDOR_5X1 = LayoutConfig(
    size=(1, 5),
    ascii_rows=("S...T",),
    legend={".": "ground", "S": "start", "T": "goal"},
)

# two agents trading ends of a one-lane corridor with a single passing bay
SWAP_CORRIDOR = LayoutConfig(
    size=(3, 7),
    ascii_rows=(
        "###.###",
        "S.....T",
        "#######",
    ),
    legend={".": "ground", "#": "elevated", "S": "start", "T": "goal"},
)

BATTLE_MAP_DEMO = LayoutConfig(
    size=(8, 10),
    ascii_rows=(
        "S.........",
        "..##...5..",
        "..##......",
        "S.....##..",
        "......##.T",
        "..5.......",
        "....##....",
        "S...##...T",
    ),
    legend={".": "ground", "#": "elevated", "S": "start", "T": "goal", "5": "water"},
)

PRESETS: Dict[str, LayoutConfig] = {
    "open_field_5x5": OPEN_FIELD_5X5,
    "corridor_5x1": CORRIDOR_5X1,
    "swap_corridor": SWAP_CORRIDOR,
    "battle_map_demo": BATTLE_MAP_DEMO,
}


def _validate_ascii(config: LayoutConfig) -> None:
    H, W = config.size
    if H <= 0 or W <= 0:
        raise MapFormatError(f"Layout size must be positive, got {config.size}")
    if len(config.ascii_rows) != H:
        raise MapFormatError(f"Expected {H} rows, got {len(config.ascii_rows)}")
    for idx, row in enumerate(config.ascii_rows):
        if len(row) != W:
            raise MapFormatError(f"Row {idx} expected width {W}, got {len(row)}")


def _char_code(ch: str, row: int, col: int, legend: Mapping[str, str]) -> int:
    if ch in CHAR_CODES:
        return CHAR_CODES[ch]
    if ch.isdigit():
        return int(ch)
    if ch.isalpha() and ch in legend:
        return LETTER_CODE_BASE + ord(ch)
    raise MapFormatError(f"Unknown layout character {ch!r} at row {row}, column {col}; use a digit or a letter declared in the legend")


def layout_to_grid(config: LayoutConfig, extra_traversable: Iterable[int] = ()) -> GridModel:
    _validate_ascii(config)
    rows = [[_char_code(ch, y, x, config.legend) for x, ch in enumerate(row)] for y, row in enumerate(config.ascii_rows)]
    return GridModel.from_rows(rows, extra_traversable)


def layout_from_rows(rows: Sequence[str], legend: Optional[Dict[str, str]] = None) -> LayoutConfig:
    rows = tuple(rows)
    if not rows:
        raise MapFormatError("Layout has no rows")
    return LayoutConfig(size=(len(rows), len(rows[0])), ascii_rows=rows, legend=dict(legend or {}))


def get_preset(name: str) -> LayoutConfig:
    try:
        return PRESETS[name.lower()]
    except KeyError:
        raise MapFormatError(f"Unknown layout preset {name!r}; choose from {sorted(PRESETS)}") from None


def ascii_preview(config: LayoutConfig = BATTLE_MAP_DEMO) -> str:
    _validate_ascii(config)
    lines = []
    if config.legend:
        lines.append("Legend: " + ", ".join(f"{k}={v}" for k, v in config.legend.items()))
    for i, row in enumerate(config.ascii_rows):
        lines.append(f"{i:02d} {' '.join(row)}")
    return "\n".join(lines)


def grid_to_rows(grid: GridModel) -> List[str]:
    """Inverse of ``layout_to_grid`` for codes that fit in one character."""
    rows = []
    for y in range(grid.height):
        row = []
        for x in range(grid.width):
            code = int(grid.terrain[y, x])
            if code in CODE_CHARS:
                row.append(CODE_CHARS[code])
            elif 0 <= code <= 9:
                row.append(str(code))
            elif code > LETTER_CODE_BASE and chr(code - LETTER_CODE_BASE).isalpha():
                row.append(chr(code - LETTER_CODE_BASE))
            else:
                raise MapFormatError(f"Terrain code {code} at ({x},{y}) has no single-character form")
        rows.append("".join(row))
    return rows


# ---------------------------------------------------------------------------
# JSON battle maps
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Canvas:
    width: int
    height: int


@dataclass(frozen=True)
class Tileset:
    name: str
    image: str
    image_width: int
    image_height: int
    tile_width: int
    tile_height: int


@dataclass(frozen=True)
class Layer:
    name: str
    tileset: str
    width: int
    height: int
    data: Tuple[int, ...]


@dataclass(frozen=True)
class BattleMap:
    canvas: Canvas
    tilesets: Tuple[Tileset, ...]
    layers: Tuple[Layer, ...]

    def tileset(self, name: str) -> Optional[Tileset]:
        for ts in self.tilesets:
            if ts.name == name:
                return ts
        return None

    def to_grid(self, layer: int = 0, extra_traversable: Iterable[int] = ()) -> GridModel:
        if not self.layers:
            raise MapFormatError("Battle map has no layers")
        lyr = self.layers[layer]
        return GridModel.from_flat(list(lyr.data), lyr.width, lyr.height, extra_traversable)

    def summary(self) -> str:
        lines = [
            f"Canvas: {self.canvas.width}x{self.canvas.height} px",
            f"Tilesets: {len(self.tilesets)}",
        ]
        for ts in self.tilesets:
            lines.append(f"  {ts.name}: {ts.image} ({ts.tile_width}x{ts.tile_height} tiles)")
        lines.append(f"Layers: {len(self.layers)}")
        for lyr in self.layers:
            lines.append(f"  {lyr.name}: {lyr.width}x{lyr.height} using '{lyr.tileset}'")
        if self.layers:
            counts = self.to_grid().count_terrain()
            lines.append(
                "Terrain: "
                + ", ".join(f"{k}={counts[k]}" for k in ("ground", "elevated", "start", "goal", "custom"))
            )
        return "\n".join(lines)


def _require(obj: Mapping[str, object], keys: Sequence[str], what: str) -> None:
    if not isinstance(obj, Mapping):
        raise MapFormatError(f"{what} must be an object")
    missing = [k for k in keys if k not in obj]
    if missing:
        raise MapFormatError(f"{what} missing required fields: {', '.join(missing)}")


def _positive_int(value: object, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise MapFormatError(f"{what} must be an integer, got {value!r}")
    if value <= 0:
        raise MapFormatError(f"{what} must be positive, got {value}")
    return value


def _parse_canvas(doc: Mapping[str, object]) -> Canvas:
    _require(doc, ("width", "height"), "Canvas")
    return Canvas(
        width=_positive_int(doc["width"], "Canvas width"),
        height=_positive_int(doc["height"], "Canvas height"),
    )


def _parse_tilesets(doc: object) -> Tuple[Tileset, ...]:
    if not isinstance(doc, list):
        raise MapFormatError("Tilesets must be an array")
    out = []
    for idx, ts in enumerate(doc):
        _require(ts, ("name", "image", "imagewidth", "imageheight", "tilewidth", "tileheight"), f"Tileset {idx}")
        out.append(
            Tileset(
                name=str(ts["name"]),
                image=str(ts["image"]),
                image_width=_positive_int(ts["imagewidth"], f"Tileset {idx} imagewidth"),
                image_height=_positive_int(ts["imageheight"], f"Tileset {idx} imageheight"),
                tile_width=_positive_int(ts["tilewidth"], f"Tileset {idx} tilewidth"),
                tile_height=_positive_int(ts["tileheight"], f"Tileset {idx} tileheight"),
            )
        )
    return tuple(out)


def _parse_layers(doc: object, canvas: Canvas, tilesets: Sequence[Tileset]) -> Tuple[Layer, ...]:
    if not isinstance(doc, list):
        raise MapFormatError("Layers must be an array")
    by_name = {ts.name: ts for ts in tilesets}
    out = []
    for idx, lyr in enumerate(doc):
        _require(lyr, ("name", "tileset", "data"), f"Layer {idx}")
        name, tileset_name, data = str(lyr["name"]), str(lyr["tileset"]), lyr["data"]
        if not isinstance(data, list):
            raise MapFormatError(f"Layer '{name}' data must be an array")
        if not data:
            raise MapFormatError(f"Layer '{name}' data cannot be empty")
        if any(isinstance(v, bool) or not isinstance(v, int) for v in data):
            raise MapFormatError(f"Layer '{name}' data must contain only integers")
        ts = by_name.get(tileset_name)
        if ts is None:
            raise MapFormatError(f"Could not find tileset '{tileset_name}' for layer '{name}'")
        width = canvas.width // ts.tile_width
        height = canvas.height // ts.tile_height
        if width == 0 or height == 0:
            raise MapFormatError(f"Layer '{name}': canvas {canvas.width}x{canvas.height} is smaller than one tile")
        if len(data) != width * height:
            raise MapFormatError(
                f"Layer '{name}' data size ({len(data)}) doesn't match calculated dimensions "
                f"({width}x{height} = {width * height}); canvas {canvas.width}x{canvas.height}, "
                f"tile size {ts.tile_width}x{ts.tile_height}"
            )
        out.append(Layer(name=name, tileset=tileset_name, width=width, height=height, data=tuple(data)))
    return tuple(out)


def parse_battle_map(document: Mapping[str, object]) -> BattleMap:
    # canvas and tilesets first: layer sizes are derived from them
    _require(document, ("layers", "tilesets", "canvas"), "Battle map")
    canvas = _parse_canvas(document["canvas"])
    tilesets = _parse_tilesets(document["tilesets"])
    layers = _parse_layers(document["layers"], canvas, tilesets)
    return BattleMap(canvas=canvas, tilesets=tilesets, layers=layers)


def load_battle_map_string(text: str) -> BattleMap:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MapFormatError(f"Error parsing JSON: {exc}") from exc
    return parse_battle_map(document)


def load_battle_map(path: Union[str, FsPath]) -> BattleMap:
    return load_battle_map_string(FsPath(path).read_text(encoding="utf-8"))


def load_ascii_layout(path: Union[str, FsPath]) -> LayoutConfig:
    """Read an ASCII layout file; ``;`` lines are comments, ``; x = name`` adds a legend entry."""
    rows: List[str] = []
    legend: Dict[str, str] = {}
    for line in FsPath(path).read_text(encoding="utf-8").splitlines():
        line = line.rstrip()
        if not line:
            continue
        if line.startswith(";"):
            key, sep, name = line[1:].partition("=")
            key = key.strip()
            if sep and len(key) == 1:
                legend[key] = name.strip()
            continue
        rows.append(line)
    return layout_from_rows(rows, legend)


def load_grid(path: Union[str, FsPath], extra_traversable: Iterable[int] = ()) -> GridModel:
    """Load a ``.json`` battle map (first layer) or an ASCII layout file."""
    path = FsPath(path)
    if path.suffix.lower() == ".json":
        return load_battle_map(path).to_grid(extra_traversable=extra_traversable)
    return layout_to_grid(load_ascii_layout(path), extra_traversable)


def battle_map_document(grid: GridModel, tile_size: int = 32, name: str = "Ground") -> Dict[str, object]:
    """Serialise ``grid`` as a single-layer battle-map document."""
    return {
        "canvas": {"width": grid.width * tile_size, "height": grid.height * tile_size},
        "tilesets": [
            {
                "name": "terrain",
                "image": "terrain.png",
                "imagewidth": tile_size * 4,
                "imageheight": tile_size * 4,
                "tilewidth": tile_size,
                "tileheight": tile_size,
            }
        ],
        "layers": [{"name": name, "tileset": "terrain", "data": [int(v) for v in grid.terrain.ravel()]}],
    }


__all__ = [
    "MapFormatError",
    "LayoutConfig",
    "OPEN_FIELD_5X5",
    "CORRIDOR_5X1",
    "SWAP_CORRIDOR",
    "BATTLE_MAP_DEMO",
    "PRESETS",
    "LETTER_CODE_BASE",
    "get_preset",
    "layout_to_grid",
    "layout_from_rows",
    "ascii_preview",
    "grid_to_rows",
    "Canvas",
    "Tileset",
    "Layer",
    "BattleMap",
    "parse_battle_map",
    "load_battle_map",
    "load_battle_map_string",
    "load_ascii_layout",
    "load_grid",
    "battle_map_document",
]

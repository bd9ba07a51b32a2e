"""Row sources and table sinks at the boundary of the network.

Edge and attribute rows are read from ``;``-separated text tables or from
any format geopandas can open. Results are written back as ``;``-separated
node and edge tables with a header row.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import geopandas as gpd
import numpy as np
import pandas as pd

from .attributes import AttributeKind, Direction, TypedValue, ValueType
from .errors import SinkUnavailable, ValidationError

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".csv", ".txt"}
TRUE_TAGS = {"t", "true", "1", "yes", "y"}
FALSE_TAGS = {"f", "false", "0", "no", "n"}

NODE_COLUMNS = ["id", "synthetic", "geometry"]
EDGE_COLUMNS = ["parent_id", "measure_from", "measure_to", "from_node_id", "to_node_id", "geometry", "length"]

# Column names used by the road database exports, mapped to ours.
COLUMN_ALIASES = {
    "reflink_oid": "parent_id",
    "refnode_oid_from": "from_node_id",
    "refnode_oid_to": "to_node_id",
    "geom": "geometry",
    "geometric_length": "length",
}


@dataclass
class EdgeRow:
    """One edge fragment as delivered by the edge source."""

    parent_id: str
    measure_from: float
    measure_to: float
    from_node_id: str
    to_node_id: str
    geometry: Any
    length: Optional[float] = None


@dataclass
class AttributeRow:
    """One attribute observation as delivered by an attribute source.

    ``value`` may be raw text. It is converted by :func:`parse_value` when
    the row is ingested, using ``value_type`` if set and the kind's own
    value type otherwise. ``direction`` accepts
    anything :func:`parse_direction` does. A ``geometry`` of None or an
    empty marker means the row has no geometry of its own.
    """

    parent_id: str
    measure_from: float
    measure_to: float
    geometry: Any
    value: Any
    value_type: Optional[Union[str, ValueType]] = None
    direction: Any = Direction.NOT_SPECIFIED


# Value parsing

def _is_missing(raw) -> bool:
    if raw is None:
        return True
    if isinstance(raw, float) and math.isnan(raw):
        return True
    return isinstance(raw, str) and raw.strip() == ""


def parse_value_type(tag) -> ValueType:
    """Declared type tag as a :class:`ValueType`."""
    if isinstance(tag, ValueType):
        return tag
    try:
        return ValueType(str(tag).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown value type tag {tag!r}") from None


def parse_value(raw, type_tag) -> TypedValue:
    """Convert a raw source value according to its declared type tag.

    Raises:
        ValidationError: if the value is missing or does not parse as the tag's type
    """
    value_type = parse_value_type(type_tag)
    if _is_missing(raw):
        raise ValidationError(f"Missing {value_type.value} value", expected_type=value_type.value)

    try:
        if value_type is ValueType.BOOLEAN:
            if isinstance(raw, (bool, np.bool_)):
                return bool(raw)
            text = str(raw).strip().lower()
            if text in TRUE_TAGS:
                return True
            if text in FALSE_TAGS:
                return False
            raise ValueError(f"not a boolean: {raw!r}")

        if value_type is ValueType.INTEGER:
            if isinstance(raw, (bool, np.bool_)):
                raise ValueError(f"boolean where integer expected: {raw!r}")
            if isinstance(raw, (int, np.integer)):
                return int(raw)
            number = float(raw)
            if not number.is_integer():
                raise ValueError(f"not an integer: {raw!r}")
            return int(number)

        if value_type is ValueType.REAL:
            if isinstance(raw, (bool, np.bool_)):
                raise ValueError(f"boolean where real expected: {raw!r}")
            return float(raw)

        return str(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Cannot read {value_type.value} value: {e}", expected_type=value_type.value) from e


def parse_direction(tag) -> Direction:
    """Direction from an enum member, a name (any case) or a numeric code.

    Missing values mean NOT_SPECIFIED.

    Raises:
        ValidationError: on an unknown direction
    """
    if isinstance(tag, Direction):
        return tag
    if _is_missing(tag):
        return Direction.NOT_SPECIFIED

    try:
        if isinstance(tag, (int, float, np.integer, np.floating)) and not isinstance(tag, bool):
            return Direction(int(tag))
        text = str(tag).strip()
        if text.lstrip("-").isdigit():
            return Direction(int(text))
        return Direction[text.upper().replace("-", "_").replace(" ", "_")]
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown direction {tag!r}") from None


# Row sources

def read_table(path) -> pd.DataFrame:
    """Load a row source.

    ``.csv``/``.txt`` files are read as ``;``-separated text with every column
    kept as text; anything else is opened with geopandas.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    logger.info(f"Loading rows from {path}")
    if path.suffix.lower() in TEXT_SUFFIXES:
        frame = pd.read_csv(path, sep=";", dtype=str, keep_default_na=False)
    else:
        frame = gpd.read_file(path)
    logger.info(f"Loaded {len(frame)} rows from {path.name}")
    return frame


def _normalise_columns(frame: pd.DataFrame, required: Sequence[str]) -> pd.DataFrame:
    renamed = {}
    for column in frame.columns:
        name = str(column).strip().lower()
        renamed[column] = COLUMN_ALIASES.get(name, name)
    frame = frame.rename(columns=renamed)

    missing = [column for column in required if column not in frame.columns]
    if missing:
        raise ValueError(f"Row source is missing required columns: {missing}")
    return frame


def _text(value) -> str:
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def _optional_float(value) -> Optional[float]:
    return None if _is_missing(value) else float(value)


def edge_rows_from_frame(frame: pd.DataFrame) -> List[EdgeRow]:
    """Convert an edge table into :class:`EdgeRow` objects, in table order."""
    frame = _normalise_columns(
        frame, ["parent_id", "measure_from", "measure_to", "from_node_id", "to_node_id", "geometry"]
    )
    has_length = "length" in frame.columns
    return [
        EdgeRow(
            parent_id=_text(record["parent_id"]),
            measure_from=float(record["measure_from"]),
            measure_to=float(record["measure_to"]),
            from_node_id=_text(record["from_node_id"]),
            to_node_id=_text(record["to_node_id"]),
            geometry=record["geometry"],
            length=_optional_float(record["length"]) if has_length else None,
        )
        for record in frame.to_dict("records")
    ]


def attribute_rows_from_frame(frame: pd.DataFrame) -> List[AttributeRow]:
    """Convert an attribute table into :class:`AttributeRow` objects, in table order.

    A missing ``geometry`` column means no row has geometry. ``value_type``
    and ``direction`` columns are optional.
    """
    frame = _normalise_columns(frame, ["parent_id", "measure_from", "measure_to", "value"])
    has_geometry = "geometry" in frame.columns
    has_type = "value_type" in frame.columns
    has_direction = "direction" in frame.columns
    return [
        AttributeRow(
            parent_id=_text(record["parent_id"]),
            measure_from=float(record["measure_from"]),
            measure_to=float(record["measure_to"]),
            geometry=record["geometry"] if has_geometry else None,
            value=record["value"],
            value_type=(
                None if not has_type or _is_missing(record["value_type"]) else record["value_type"]
            ),
            direction=record["direction"] if has_direction else Direction.NOT_SPECIFIED,
        )
        for record in frame.to_dict("records")
    ]


def sort_attribute_rows(rows: Iterable[AttributeRow]) -> List[AttributeRow]:
    """Stable sort by parent id, then start measure."""
    return sorted(rows, key=lambda r: (r.parent_id, r.measure_from))


# Sinks

def _node_records(network):
    return [node.to_record() for node in network.nodes.values()], NODE_COLUMNS


def _edge_records(network, kinds):
    kinds = [AttributeKind(k) for k in (network.config.attribute_kinds if kinds is None else kinds)]
    records = [fragment.to_record(kinds) for fragment in network.iter_fragments()]
    return records, EDGE_COLUMNS + [kind.value for kind in kinds]


def render(value) -> str:
    """Text form of a table cell: t/f for booleans, WKT for geometries, empty for absent."""
    if _is_missing(value):
        return ""
    if isinstance(value, (bool, np.bool_)):
        return "t" if value else "f"
    if hasattr(value, "wkt"):
        return value.wkt
    if isinstance(value, (float, np.floating)):
        return repr(float(value))
    return str(value)


def _write_table(records: List[dict], columns: List[str], path) -> None:
    path = Path(path)
    table = pd.DataFrame(
        [[render(record[column]) for column in columns] for record in records],
        columns=columns,
    )
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as handle:
            table.to_csv(handle, sep=";", index=False)
    except OSError as e:
        raise SinkUnavailable(f"Failed to write {path}: {e}") from e
    logger.info(f"Wrote {len(table)} rows to {path}")


def write_nodes(network, path) -> None:
    """Write the ``id;synthetic;geometry`` node table.

    Raises:
        SinkUnavailable: if the file cannot be created or written
    """
    _write_table(*_node_records(network), path)


def write_edges(network, path, kinds: Optional[Iterable[AttributeKind]] = None) -> None:
    """Write the edge table, one column per requested attribute kind.

    Raises:
        SinkUnavailable: if the file cannot be created or written
    """
    _write_table(*_edge_records(network, kinds), path)


def rows_summary(rows: Sequence[Any]) -> Dict[str, int]:
    """Row and distinct parent counts, for reports."""
    return {"rows": len(rows), "parents": len({row.parent_id for row in rows})}

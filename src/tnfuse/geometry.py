"""Polyline primitives used by the overlay: project, split, append, reverse.

All functions are pure. Tolerances are absolute distances in the projected
CRS of the network and comparisons are strict (``distance < tolerance``).
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import shapely.wkt
from shapely import get_coordinates
from shapely.errors import ShapelyError
from shapely.geometry import LineString, MultiLineString, Point
from shapely.ops import linemerge

from .errors import MalformedGeometry

logger = logging.getLogger(__name__)

Coordinate = Tuple[float, float]
PointLike = Union[Point, Sequence[float]]

DEFAULT_TOLERANCE = 1e-10
SLACK_FACTOR = 10.0
EMPTY_MARKERS = {"", "POINT EMPTY", "LINESTRING EMPTY"}


def as_coordinate(point: PointLike) -> Coordinate:
    """Return ``point`` as an ``(x, y)`` tuple of floats."""
    if isinstance(point, Point):
        return (float(point.x), float(point.y))
    return (float(point[0]), float(point[1]))


def coordinates(line: LineString) -> List[Coordinate]:
    """2D vertex list of ``line``."""
    return [(float(x), float(y)) for x, y in get_coordinates(line)]


def start_point(line: LineString) -> Coordinate:
    return as_coordinate(line.coords[0])


def end_point(line: LineString) -> Coordinate:
    return as_coordinate(line.coords[-1])


def points_close(a: PointLike, b: PointLike, tolerance: float) -> bool:
    """True if ``a`` and ``b`` are within ``tolerance`` of each other (inclusive)."""
    ax, ay = as_coordinate(a)
    bx, by = as_coordinate(b)
    return math.hypot(ax - bx, ay - by) <= tolerance


def segment_distances(line: LineString, point: PointLike) -> np.ndarray:
    """Distance from ``point`` to each segment of ``line``, in segment order."""
    coords = get_coordinates(line)
    p = np.asarray(as_coordinate(point))

    a = coords[:-1]
    ab = coords[1:] - a
    denom = np.einsum("ij,ij->i", ab, ab)
    safe = np.where(denom > 0, denom, 1.0)
    t = np.where(denom > 0, np.einsum("ij,ij->i", p - a, ab) / safe, 0.0)
    closest = a + ab * np.clip(t, 0.0, 1.0)[:, None]
    return np.hypot(p[0] - closest[:, 0], p[1] - closest[:, 1])


def _add(coords: List[Coordinate], coordinate: Coordinate) -> None:
    # Consecutive repeated vertices are never kept.
    if not coords or coords[-1] != coordinate:
        coords.append(coordinate)


def project_point(
    line: LineString,
    point: PointLike,
    tolerance: float = DEFAULT_TOLERANCE,
    allow_slack: bool = True,
) -> Optional[LineString]:
    """Insert ``point`` as a vertex of ``line`` on the first segment within tolerance.

    The point's own coordinate is inserted, not its foot on the segment. If no
    segment qualifies and ``allow_slack`` is set, the projection is retried
    once at ``tolerance * SLACK_FACTOR``.

    Returns:
        The line with the extra vertex, or None if the point is too far away.
    """
    distances = segment_distances(line, point)
    hits = np.flatnonzero(distances < tolerance)

    if hits.size == 0:
        if allow_slack:
            return project_point(line, point, tolerance * SLACK_FACTOR, False)
        return None

    segment = int(hits[0])
    coords = coordinates(line)
    projected: List[Coordinate] = []
    for i, coordinate in enumerate(coords):
        _add(projected, coordinate)
        if i == segment:
            _add(projected, as_coordinate(point))

    return LineString(projected)


def spans_point(
    line: LineString,
    point: PointLike,
    tolerance: float = DEFAULT_TOLERANCE,
    allow_slack: bool = True,
) -> bool:
    """True if ``point`` lies within ``tolerance`` of some segment of ``line``."""
    if bool(np.any(segment_distances(line, point) < tolerance)):
        return True
    if allow_slack:
        return spans_point(line, point, tolerance * SLACK_FACTOR, False)
    return False


def split_by(
    line: LineString,
    points: Sequence[PointLike],
    tolerance: float = DEFAULT_TOLERANCE,
    allow_slack: bool = True,
) -> Optional[List[LineString]]:
    """Cut ``line`` at each of ``points``, in point order.

    Each point is first projected onto the line (see :func:`project_point`),
    then the vertex list is walked and a new part is started every time the
    next pending cut point is reached.

    Returns:
        ``len(points) + 1`` consecutive LineStrings, or None if a point could
        not be projected or the cut did not produce the expected parts.
    """
    projected = line
    for point in points:
        projected = project_point(projected, point, tolerance, allow_slack)
        if projected is None:
            logger.debug(f"Point {as_coordinate(point)} not within {tolerance} of line")
            return None

    cuts = [as_coordinate(p) for p in points]
    parts: List[List[Coordinate]] = []
    current: List[Coordinate] = []
    pending = 0

    for coordinate in coordinates(projected):
        _add(current, coordinate)
        if pending < len(cuts) and coordinate == cuts[pending]:
            parts.append(current)
            current = [coordinate]
            pending += 1
    parts.append(current)

    if len(parts) != len(cuts) + 1 or any(len(part) < 2 for part in parts):
        logger.debug(f"Split produced {len(parts)} parts, expected {len(cuts) + 1}")
        return None

    return [LineString(part) for part in parts]


def append(line_a: LineString, line_b: LineString, conditional: bool = False) -> LineString:
    """Concatenate the vertices of ``line_b`` onto ``line_a``.

    With ``conditional`` set, ``line_b`` (minus its first vertex) is only
    appended if ``line_a`` ends exactly where ``line_b`` starts; otherwise
    ``line_a`` is returned unchanged.
    """
    coords = coordinates(line_a)
    other = coordinates(line_b)

    if conditional:
        if coords[-1] == other[0]:
            for coordinate in other[1:]:
                _add(coords, coordinate)
    else:
        for coordinate in other:
            _add(coords, coordinate)

    return LineString(coords)


def reverse(line: LineString) -> LineString:
    """Return ``line`` with its vertex order reversed."""
    return LineString(coordinates(line)[::-1])


def between(line_a: LineString, line_b: LineString) -> Optional[LineString]:
    """Two-point connector from the end of ``line_a`` to the start of ``line_b``.

    Returns None if the two points coincide.
    """
    a = end_point(line_a)
    b = start_point(line_b)
    if a == b:
        return None
    return LineString([a, b])


def is_empty_marker(value) -> bool:
    """True for values that stand for "no geometry" in a row source."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value.strip().upper() in EMPTY_MARKERS
    return getattr(value, "is_empty", False)


def parse_linestring(value) -> LineString:
    """Parse WKT text (or accept a geometry) into a 2D LineString.

    MultiLineStrings that merge into a single line are accepted.

    Raises:
        MalformedGeometry: if the value is empty, unparsable or not a line
    """
    if is_empty_marker(value):
        raise MalformedGeometry("Empty geometry where a line is required")

    if isinstance(value, str):
        try:
            geometry = shapely.wkt.loads(value)
        except (ShapelyError, ValueError) as e:
            raise MalformedGeometry(f"Unparsable line text {value[:60]!r}: {e}") from e
    else:
        geometry = value

    if isinstance(geometry, MultiLineString):
        geometry = linemerge(geometry)

    if not isinstance(geometry, LineString):
        raise MalformedGeometry(f"Expected LineString, got {getattr(geometry, 'geom_type', type(geometry).__name__)}")
    if geometry.is_empty or len(geometry.coords) < 2:
        raise MalformedGeometry("LineString must have at least two vertices")

    if geometry.has_z:
        geometry = LineString(coordinates(geometry))
    return geometry

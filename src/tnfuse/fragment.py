"""Linear-referenced slices of a parent entity carrying an attribute table.

A fragment is either an *edge* fragment (a slice of a network edge, with
from/to node ids) or an *observation* (one row from an attribute source,
not yet overlaid onto the network). Both share the same fields and
geometric predicates; the kind is a discriminator, not a subclass.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional

from shapely.geometry import LineString

from . import geometry as geom
from .attributes import (
    Attribute,
    AttributeKind,
    Direction,
    canonical_direction,
    points_against_travel,
    validate,
)
from .errors import ValidationError

AttributeTable = Dict[AttributeKind, Attribute]


class FragmentKind(str, Enum):
    EDGE = "edge"
    OBSERVATION = "observation"


class Fragment:
    """A slice ``[measure_from, measure_to]`` of the parent ``parent_id``.

    Measures are positions on the parent's linear scale. They are not
    range-checked here, only ordered: ``measure_from > measure_to`` is
    rejected, equal measures are accepted.

    Raises:
        ValidationError: on reversed measures or an invalid attribute
        UnsupportedKind: on an attribute of unknown kind
    """

    def __init__(
        self,
        parent_id: str,
        geometry: Optional[LineString],
        measure_from: float,
        measure_to: float,
        attributes: Optional[Iterable[Attribute]] = None,
        kind: FragmentKind = FragmentKind.OBSERVATION,
        from_node_id: Optional[str] = None,
        to_node_id: Optional[str] = None,
    ):
        if measure_from > measure_to:
            raise ValidationError(
                f"{parent_id}: measure_from {measure_from} must not exceed measure_to {measure_to}"
            )
        if kind is FragmentKind.EDGE and (from_node_id is None or to_node_id is None):
            raise ValidationError(f"{parent_id}: edge fragments need both node ids")

        self.parent_id = parent_id
        self.measure_from = float(measure_from)
        self.measure_to = float(measure_to)
        self.kind = kind
        self.from_node_id = from_node_id
        self.to_node_id = to_node_id

        self.attributes: AttributeTable = {}
        for attribute in attributes or ():
            validate(attribute)
            self.attributes[AttributeKind(attribute.kind)] = attribute

        self._geometry: Optional[LineString] = None
        self._length = 0.0
        self.geometry = geometry

    @classmethod
    def edge(
        cls,
        parent_id: str,
        geometry: LineString,
        measure_from: float,
        measure_to: float,
        from_node_id: str,
        to_node_id: str,
        attributes: Optional[Iterable[Attribute]] = None,
    ) -> "Fragment":
        return cls(
            parent_id,
            geometry,
            measure_from,
            measure_to,
            attributes,
            kind=FragmentKind.EDGE,
            from_node_id=from_node_id,
            to_node_id=to_node_id,
        )

    @classmethod
    def observation(
        cls,
        parent_id: str,
        geometry: Optional[LineString],
        measure_from: float,
        measure_to: float,
        attributes: Optional[Iterable[Attribute]] = None,
    ) -> "Fragment":
        return cls(parent_id, geometry, measure_from, measure_to, attributes)

    @property
    def geometry(self) -> Optional[LineString]:
        return self._geometry

    @geometry.setter
    def geometry(self, value: Optional[LineString]) -> None:
        self._geometry = value
        self._length = float(value.length) if value is not None else 0.0

    @property
    def length(self) -> float:
        return self._length

    @property
    def is_edge(self) -> bool:
        return self.kind is FragmentKind.EDGE

    @property
    def start(self) -> geom.Coordinate:
        return geom.start_point(self._geometry)

    @property
    def end(self) -> geom.Coordinate:
        return geom.end_point(self._geometry)

    def __repr__(self) -> str:
        nodes = f", {self.from_node_id}->{self.to_node_id}" if self.is_edge else ""
        return f"Fragment({self.parent_id!r}, {self.measure_from}-{self.measure_to}{nodes})"

    def describe(self) -> str:
        """Identity used in log messages."""
        return f"{self.parent_id};{self.measure_from};{self.measure_to}"

    # Attribute table

    def get(self, kind: AttributeKind) -> Optional[Attribute]:
        return self.attributes.get(AttributeKind(kind))

    def merge_attributes(self, other: "Fragment") -> None:
        """Copy every attribute of ``other`` into this table, replacing same kinds."""
        self.attributes.update(other.attributes)

    def property_equal(self, other: "Fragment") -> bool:
        """Same parent and identical attribute tables (values and directions)."""
        return self.parent_id == other.parent_id and self.attributes == other.attributes

    def split_off(
        self,
        geometry: LineString,
        measure_from: float,
        measure_to: float,
        from_node_id: str,
        to_node_id: str,
    ) -> "Fragment":
        """New edge fragment of the same parent carrying a copy of this table."""
        return Fragment.edge(
            self.parent_id,
            geometry,
            measure_from,
            measure_to,
            from_node_id,
            to_node_id,
            self.attributes.values(),
        )

    def fill_missing_from(self, other: "Fragment", connected: bool) -> List[AttributeKind]:
        """Copy attributes this fragment lacks from a neighbouring fragment.

        Forbidden driving direction is never copied. Other directional
        attributes are only copied when the two fragments are ``connected``
        through a shared node.

        Returns:
            The kinds that were copied.
        """
        copied = []
        for kind, attribute in other.attributes.items():
            if kind in self.attributes:
                continue
            if kind is AttributeKind.FORBIDDEN_DRIVER_DIRECTION:
                continue
            if attribute.directional and not connected:
                continue
            self.attributes[kind] = attribute
            copied.append(kind)
        return copied

    # Geometric predicates

    def geom_equals(self, other: "Fragment") -> bool:
        return self._geometry.equals_exact(other.geometry, 0.0)

    def starts_within(self, other: "Fragment", tolerance: float = geom.DEFAULT_TOLERANCE) -> bool:
        """True if this start point lies on some segment of ``other``."""
        return geom.spans_point(other.geometry, self.start, tolerance, True)

    def ends_within(self, other: "Fragment", tolerance: float = geom.DEFAULT_TOLERANCE) -> bool:
        """True if this end point lies on some segment of ``other``."""
        return geom.spans_point(other.geometry, self.end, tolerance, True)

    def is_within(self, other: "Fragment", tolerance: float = geom.DEFAULT_TOLERANCE) -> bool:
        return self.starts_within(other, tolerance) and self.ends_within(other, tolerance)

    def is_completely_within(self, other: "Fragment", tolerance: float = geom.DEFAULT_TOLERANCE) -> bool:
        """Within ``other`` and sharing neither endpoint with it exactly."""
        return (
            self.is_within(other, tolerance)
            and self.start != other.start
            and self.end != other.end
        )

    def has_common_geometry(self, other: "Fragment", tolerance: float = geom.DEFAULT_TOLERANCE) -> bool:
        """True if the two geometries overlap rather than merely touch end to start."""
        if self.start == other.end or other.start == self.end:
            return False
        return (
            self.geom_equals(other)
            or self.starts_within(other, tolerance)
            or other.starts_within(self, tolerance)
            or self.ends_within(other, tolerance)
            or other.ends_within(self, tolerance)
            or self.start == other.start
            or self.end == other.end
        )

    # Direction

    def aligned(self) -> bool:
        """False if any directional attribute says travel runs against the geometry."""
        return not any(points_against_travel(a) for a in self.attributes.values())

    def align(self) -> bool:
        """Reorient a misaligned fragment so travel runs with its geometry.

        Reverses the geometry, swaps the node ids, complements the measures
        on a 0..1 scale and points every WITH/AGAINST directional attribute
        canonically. WITH_AND_AGAINST and NOT_SPECIFIED directions are left
        as they are. Aligned fragments are left alone.

        Returns:
            True if the fragment was changed.
        """
        if self.aligned():
            return False

        self.geometry = geom.reverse(self._geometry)
        self.from_node_id, self.to_node_id = self.to_node_id, self.from_node_id
        self.measure_from, self.measure_to = 1.0 - self.measure_to, 1.0 - self.measure_from

        for kind, attribute in list(self.attributes.items()):
            if attribute.directional and attribute.direction in (Direction.WITH, Direction.AGAINST):
                self.attributes[kind] = attribute.with_direction(canonical_direction(attribute))
        return True

    # Output

    def to_record(self, kinds: Iterable[AttributeKind] = ()) -> dict:
        """Flat dict of the edge-table columns, one extra column per kind."""
        record = {
            "parent_id": self.parent_id,
            "measure_from": self.measure_from,
            "measure_to": self.measure_to,
            "from_node_id": self.from_node_id,
            "to_node_id": self.to_node_id,
            "geometry": self._geometry,
            "length": self._length,
        }
        for kind in kinds:
            attribute = self.get(kind)
            record[AttributeKind(kind).value] = attribute.value if attribute is not None else None
        return record

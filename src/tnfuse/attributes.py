"""Typed attribute values, direction categories and validation rules."""

import math
from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Dict, Optional, Tuple, Union

from .errors import UnsupportedKind, ValidationError

# Runtime representation of a typed value. ``bool`` is checked before ``int``
# everywhere because it is a subclass of ``int``.
TypedValue = Union[int, float, bool, str]


class ValueType(str, Enum):
    """Declared type tag of an attribute value."""

    INTEGER = "integer"
    REAL = "real"
    BOOLEAN = "boolean"
    TEXT = "text"


class Direction(IntEnum):
    """Direction an attribute applies in, relative to the stored geometry.

    The integer codes are the ones used by the attribute sources.
    """

    NOT_SPECIFIED = 0
    WITH = 1
    AGAINST = 2
    WITH_AND_AGAINST = 3


class AttributeKind(str, Enum):
    """Closed catalogue of attribute kinds."""

    FUNCTIONAL_ROAD_CLASS = "functional_road_class"
    NUMBER_OF_LANES = "number_of_lanes"
    FORBIDDEN_DRIVER_DIRECTION = "forbidden_driver_direction"
    SPEED_LIMIT = "speed_limit"
    ROAD_WIDTH = "road_width"
    LIVING_STREET = "living_street"
    GUARD_RAIL = "guard_rail"
    ROUNDABOUT = "roundabout"
    URBAN_AREA = "urban_area"
    BRIDGE_AND_TUNNEL = "bridge_and_tunnel"
    MOTORWAY = "motorway"
    PEDESTRIAN_STREET = "pedestrian_street"
    ROAD_MANAGER = "road_manager"
    WEARING_COURSE = "wearing_course"
    LIMITED_VEHICLE_LENGTH = "limited_vehicle_length"
    LIMITED_VEHICLE_WIDTH = "limited_vehicle_width"


@dataclass(frozen=True)
class KindSpec:
    """Expected type, inclusive numeric range and directionality of a kind."""

    value_type: ValueType
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    directional: bool = False

    @property
    def range(self) -> Tuple[Optional[float], Optional[float]]:
        return (self.minimum, self.maximum)

    def describe_range(self) -> str:
        if self.minimum is None and self.maximum is None:
            return "any"
        low = "-inf" if self.minimum is None else f"{self.minimum:g}"
        high = "inf" if self.maximum is None else f"{self.maximum:g}"
        return f"[{low}, {high}]"


KIND_SPECS: Dict[AttributeKind, KindSpec] = {
    AttributeKind.FUNCTIONAL_ROAD_CLASS: KindSpec(ValueType.INTEGER, 0, 9),
    AttributeKind.NUMBER_OF_LANES: KindSpec(ValueType.INTEGER, 0, None),
    AttributeKind.FORBIDDEN_DRIVER_DIRECTION: KindSpec(ValueType.BOOLEAN, directional=True),
    AttributeKind.SPEED_LIMIT: KindSpec(ValueType.REAL, 0.0, None, directional=True),
    AttributeKind.ROAD_WIDTH: KindSpec(ValueType.REAL, 0.0, None),
    AttributeKind.LIVING_STREET: KindSpec(ValueType.BOOLEAN),
    AttributeKind.GUARD_RAIL: KindSpec(ValueType.BOOLEAN),
    AttributeKind.ROUNDABOUT: KindSpec(ValueType.BOOLEAN),
    AttributeKind.URBAN_AREA: KindSpec(ValueType.BOOLEAN),
    AttributeKind.BRIDGE_AND_TUNNEL: KindSpec(ValueType.TEXT),
    AttributeKind.MOTORWAY: KindSpec(ValueType.BOOLEAN),
    AttributeKind.PEDESTRIAN_STREET: KindSpec(ValueType.BOOLEAN),
    AttributeKind.ROAD_MANAGER: KindSpec(ValueType.TEXT),
    AttributeKind.WEARING_COURSE: KindSpec(ValueType.TEXT),
    AttributeKind.LIMITED_VEHICLE_LENGTH: KindSpec(ValueType.REAL, 0.0, None),
    AttributeKind.LIMITED_VEHICLE_WIDTH: KindSpec(ValueType.REAL, 0.0, None),
}


@dataclass(frozen=True)
class Attribute:
    """One typed observation of a kind, pointed in a direction.

    Attributes are immutable; a new direction is obtained with
    :meth:`with_direction` and stored back into the owning table.
    """

    kind: AttributeKind
    direction: Direction
    value: TypedValue

    @property
    def directional(self) -> bool:
        return spec_for(self.kind).directional

    def with_direction(self, direction: Direction) -> "Attribute":
        return replace(self, direction=direction)


def spec_for(kind) -> KindSpec:
    """Look up the spec of ``kind``, raising :class:`UnsupportedKind` if unknown."""
    try:
        return KIND_SPECS[AttributeKind(kind)]
    except (ValueError, KeyError):
        raise UnsupportedKind(f"Unsupported attribute kind: {kind!r}", kind=str(kind)) from None


def value_type_of(value) -> Optional[ValueType]:
    """Runtime tag of a value, or None if it is not a supported type."""
    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if isinstance(value, int):
        return ValueType.INTEGER
    if isinstance(value, float):
        return ValueType.REAL
    if isinstance(value, str):
        return ValueType.TEXT
    return None


def validate(attribute: Attribute) -> Attribute:
    """Check that an attribute's value matches its kind's type and range.

    Raises:
        UnsupportedKind: if the kind is not in the catalogue
        ValidationError: on type mismatch or out-of-range value
    """
    spec = spec_for(attribute.kind)
    kind = AttributeKind(attribute.kind)

    if not isinstance(attribute.direction, Direction):
        raise ValidationError(
            f"{kind.value}: direction must be a Direction, got {attribute.direction!r}",
            kind=kind.value,
            expected_type=spec.value_type.value,
            expected_range=spec.range,
        )

    actual = value_type_of(attribute.value)
    if actual is not spec.value_type:
        raise ValidationError(
            f"{kind.value}: expected {spec.value_type.value} value in range "
            f"{spec.describe_range()}, got {type(attribute.value).__name__} {attribute.value!r}",
            kind=kind.value,
            expected_type=spec.value_type.value,
            expected_range=spec.range,
        )

    if spec.value_type in (ValueType.INTEGER, ValueType.REAL):
        too_low = spec.minimum is not None and attribute.value < spec.minimum
        too_high = spec.maximum is not None and attribute.value > spec.maximum
        if too_low or too_high or math.isnan(attribute.value):
            raise ValidationError(
                f"{kind.value}: value {attribute.value!r} outside expected range "
                f"{spec.describe_range()} for {spec.value_type.value}",
                kind=kind.value,
                expected_type=spec.value_type.value,
                expected_range=spec.range,
            )

    return attribute


def canonical_direction(attribute: Attribute) -> Direction:
    """Direction a directional attribute takes once its fragment is aligned.

    Forbidden driving direction ends up AGAINST the geometry, every other
    directional attribute ends up WITH it.
    """
    if AttributeKind(attribute.kind) is AttributeKind.FORBIDDEN_DRIVER_DIRECTION:
        return Direction.AGAINST
    return Direction.WITH


def points_against_travel(attribute: Attribute) -> bool:
    """True if a pointed directional attribute says travel runs against the geometry."""
    if not attribute.directional:
        return False
    if AttributeKind(attribute.kind) is AttributeKind.FORBIDDEN_DRIVER_DIRECTION:
        return attribute.direction == Direction.WITH
    return attribute.direction == Direction.AGAINST

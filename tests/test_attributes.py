"""Tests for attribute kinds, directions and validation."""

import math

import pytest

from tnfuse.attributes import (
    KIND_SPECS,
    Attribute,
    AttributeKind,
    Direction,
    ValueType,
    canonical_direction,
    points_against_travel,
    spec_for,
    validate,
    value_type_of,
)
from tnfuse.errors import UnsupportedKind, ValidationError


class TestKindCatalogue:
    """Tests for the kind catalogue."""

    def test_every_kind_is_catalogued(self):
        """Test that no kind is missing its expected type and range."""
        assert set(KIND_SPECS) == set(AttributeKind)

    def test_directional_kinds(self):
        """Test that only forbidden direction and speed limit are directional."""
        directional = {kind for kind, spec in KIND_SPECS.items() if spec.directional}
        assert directional == {AttributeKind.FORBIDDEN_DRIVER_DIRECTION, AttributeKind.SPEED_LIMIT}

    def test_spec_for_accepts_values(self):
        """Test lookup by enum value string."""
        assert spec_for("functional_road_class").range == (0, 9)

    def test_spec_for_unknown_kind(self):
        """Test that unknown kinds raise UnsupportedKind."""
        with pytest.raises(UnsupportedKind):
            spec_for("colour")

    def test_describe_range(self):
        """Test range text used in messages and the CLI."""
        assert KIND_SPECS[AttributeKind.FUNCTIONAL_ROAD_CLASS].describe_range() == "[0, 9]"
        assert KIND_SPECS[AttributeKind.NUMBER_OF_LANES].describe_range() == "[0, inf]"
        assert KIND_SPECS[AttributeKind.ROAD_MANAGER].describe_range() == "any"


class TestValueTypes:
    """Tests for runtime value tags."""

    def test_bool_is_not_integer(self):
        """Test that booleans are tagged before integers."""
        assert value_type_of(True) is ValueType.BOOLEAN
        assert value_type_of(3) is ValueType.INTEGER
        assert value_type_of(3.0) is ValueType.REAL
        assert value_type_of("asphalt") is ValueType.TEXT
        assert value_type_of(None) is None


class TestValidate:
    """Tests for attribute validation."""

    def test_valid_attributes(self):
        """Test that values of the right type and range pass."""
        validate(Attribute(AttributeKind.SPEED_LIMIT, Direction.WITH, 50.0))
        validate(Attribute(AttributeKind.FUNCTIONAL_ROAD_CLASS, Direction.NOT_SPECIFIED, 0))
        validate(Attribute(AttributeKind.FUNCTIONAL_ROAD_CLASS, Direction.NOT_SPECIFIED, 9))
        validate(Attribute(AttributeKind.NUMBER_OF_LANES, Direction.NOT_SPECIFIED, 0))
        validate(Attribute(AttributeKind.FORBIDDEN_DRIVER_DIRECTION, Direction.WITH, True))
        validate(Attribute(AttributeKind.WEARING_COURSE, Direction.NOT_SPECIFIED, "asphalt"))

    def test_out_of_range_names_kind_type_and_range(self):
        """Test that the error carries the offending kind, type and range."""
        with pytest.raises(ValidationError) as excinfo:
            validate(Attribute(AttributeKind.FUNCTIONAL_ROAD_CLASS, Direction.NOT_SPECIFIED, 10))

        error = excinfo.value
        assert error.kind == "functional_road_class"
        assert error.expected_type == "integer"
        assert error.expected_range == (0, 9)

    def test_negative_values_rejected(self):
        """Test lower bounds of lane count and speed limit."""
        with pytest.raises(ValidationError):
            validate(Attribute(AttributeKind.NUMBER_OF_LANES, Direction.NOT_SPECIFIED, -1))
        with pytest.raises(ValidationError):
            validate(Attribute(AttributeKind.SPEED_LIMIT, Direction.WITH, -0.5))

    def test_nan_rejected(self):
        """Test that NaN is never inside a numeric range."""
        with pytest.raises(ValidationError):
            validate(Attribute(AttributeKind.SPEED_LIMIT, Direction.WITH, math.nan))

    def test_type_tag_mismatch(self):
        """Test that the runtime tag must match the kind's expected type."""
        with pytest.raises(ValidationError, match="expected real"):
            validate(Attribute(AttributeKind.SPEED_LIMIT, Direction.WITH, 50))
        with pytest.raises(ValidationError, match="expected integer"):
            validate(Attribute(AttributeKind.NUMBER_OF_LANES, Direction.NOT_SPECIFIED, True))
        with pytest.raises(ValidationError, match="expected boolean"):
            validate(Attribute(AttributeKind.ROUNDABOUT, Direction.NOT_SPECIFIED, "yes"))

    def test_direction_must_be_enum(self):
        """Test that raw integers are not accepted as directions."""
        with pytest.raises(ValidationError, match="direction"):
            validate(Attribute(AttributeKind.SPEED_LIMIT, 1, 50.0))

    def test_unknown_kind(self):
        """Test that validation of an unknown kind raises UnsupportedKind."""
        with pytest.raises(UnsupportedKind):
            validate(Attribute("colour", Direction.NOT_SPECIFIED, "red"))


class TestDirections:
    """Tests for direction handling of directional attributes."""

    def test_with_direction_returns_copy(self):
        """Test that attributes are immutable and with_direction copies."""
        attribute = Attribute(AttributeKind.SPEED_LIMIT, Direction.AGAINST, 70.0)
        turned = attribute.with_direction(Direction.WITH)

        assert attribute.direction is Direction.AGAINST
        assert turned.direction is Direction.WITH
        assert turned.value == 70.0

    def test_canonical_direction(self):
        """Test the direction each kind takes on an aligned fragment."""
        forbidden = Attribute(AttributeKind.FORBIDDEN_DRIVER_DIRECTION, Direction.WITH, True)
        speed = Attribute(AttributeKind.SPEED_LIMIT, Direction.AGAINST, 70.0)

        assert canonical_direction(forbidden) is Direction.AGAINST
        assert canonical_direction(speed) is Direction.WITH

    def test_points_against_travel(self):
        """Test which attributes make a fragment misaligned."""
        assert points_against_travel(Attribute(AttributeKind.FORBIDDEN_DRIVER_DIRECTION, Direction.WITH, True))
        assert not points_against_travel(Attribute(AttributeKind.FORBIDDEN_DRIVER_DIRECTION, Direction.AGAINST, True))
        assert points_against_travel(Attribute(AttributeKind.SPEED_LIMIT, Direction.AGAINST, 70.0))
        assert not points_against_travel(Attribute(AttributeKind.SPEED_LIMIT, Direction.WITH_AND_AGAINST, 70.0))
        assert not points_against_travel(Attribute(AttributeKind.NUMBER_OF_LANES, Direction.AGAINST, 2))

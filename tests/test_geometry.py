"""Tests for the polyline primitives."""

import math

import pytest
from shapely.geometry import LineString, MultiLineString, Point

from tnfuse import geometry as geom
from tnfuse.errors import MalformedGeometry


class TestProjection:
    """Tests for project_point and spans_point."""

    def test_project_inserts_point_on_first_segment(self):
        """Test that the point's own coordinate becomes a vertex."""
        line = LineString([(0, 0), (10, 0)])
        projected = geom.project_point(line, (4, 0))
        assert geom.coordinates(projected) == [(0, 0), (4, 0), (10, 0)]

    def test_project_existing_vertex_keeps_line(self):
        """Test that projecting an existing vertex leaves no repeated vertex."""
        line = LineString([(0, 0), (5, 0), (10, 0)])
        projected = geom.project_point(line, (5, 0))
        assert geom.coordinates(projected) == [(0, 0), (5, 0), (10, 0)]

    def test_project_far_point_fails(self):
        """Test that a point outside tolerance is not projected."""
        line = LineString([(0, 0), (10, 0)])
        assert geom.project_point(line, (5, 1), 1e-10, allow_slack=False) is None
        assert geom.project_point(line, (5, 1), 1e-10, allow_slack=True) is None

    def test_slack_retries_at_ten_times_tolerance(self):
        """Test the one-shot slack retry."""
        line = LineString([(0, 0), (10, 0)])
        point = (5, 5e-10)

        assert geom.project_point(line, point, 1e-10, allow_slack=False) is None
        assert geom.project_point(line, point, 1e-10, allow_slack=True) is not None
        assert geom.project_point(line, (5, 5e-9), 1e-10, allow_slack=True) is None

    def test_comparison_is_strict(self):
        """Test that a point exactly at tolerance distance is outside."""
        line = LineString([(0, 0), (10, 0)])
        assert not geom.spans_point(line, (5, 0.5), 0.5, allow_slack=False)
        assert geom.spans_point(line, (5, 0.25), 0.5, allow_slack=False)

    def test_spans_point(self):
        """Test span test with and without slack."""
        line = LineString([(0, 0), (10, 0), (10, 10)])
        assert geom.spans_point(line, (10, 5))
        assert geom.spans_point(line, (0, 0))
        assert not geom.spans_point(line, (5, 5))

    def test_accepts_shapely_points(self):
        """Test that Point objects and tuples are interchangeable."""
        line = LineString([(0, 0), (10, 0)])
        assert geom.spans_point(line, Point(3, 0))

    def test_segment_distances(self):
        """Test vectorised point-to-segment distances."""
        line = LineString([(0, 0), (10, 0), (10, 10)])
        distances = geom.segment_distances(line, (12, 5))
        assert distances[0] == pytest.approx(math.hypot(2, 5))
        assert distances[1] == pytest.approx(2.0)


class TestSplitBy:
    """Tests for split_by."""

    def test_split_inside_segment(self):
        """Test splitting a two-vertex line at two interior points."""
        line = LineString([(0, 0), (10, 0)])
        parts = geom.split_by(line, [(2, 0), (6, 0)])

        assert [geom.coordinates(p) for p in parts] == [
            [(0, 0), (2, 0)],
            [(2, 0), (6, 0)],
            [(6, 0), (10, 0)],
        ]

    def test_split_at_existing_vertex_reconstructs(self):
        """Test that the two parts append back into the original line."""
        line = LineString([(0, 0), (5, 0), (10, 5)])
        first, second = geom.split_by(line, [(5, 0)])

        assert geom.coordinates(first) == [(0, 0), (5, 0)]
        assert geom.coordinates(second) == [(5, 0), (10, 5)]
        assert geom.coordinates(geom.append(first, second)) == geom.coordinates(line)

    def test_split_fails_when_point_is_off_line(self):
        """Test that an unprojectable point makes the split fail."""
        line = LineString([(0, 0), (10, 0)])
        assert geom.split_by(line, [(5, 1)]) is None

    def test_split_at_endpoint_fails(self):
        """Test that a cut at the line's end leaves a degenerate part."""
        line = LineString([(0, 0), (10, 0)])
        assert geom.split_by(line, [(10, 0)]) is None

    def test_split_with_slack(self):
        """Test that slack lets a slightly offset point cut the line."""
        line = LineString([(0, 0), (10, 0)])
        parts = geom.split_by(line, [(5, 5e-10)], 1e-10, allow_slack=True)
        assert parts is not None
        assert geom.end_point(parts[0]) == (5, 5e-10)


class TestAppendReverseBetween:
    """Tests for append, reverse and between."""

    def test_conditional_append_requires_touching(self):
        """Test that a conditional append of a non-adjacent line is a no-op."""
        a = LineString([(0, 0), (5, 0)])
        b = LineString([(6, 0), (10, 0)])
        assert geom.coordinates(geom.append(a, b, conditional=True)) == [(0, 0), (5, 0)]

    def test_conditional_append_skips_shared_vertex(self):
        """Test that a touching line is appended without its first vertex."""
        a = LineString([(0, 0), (5, 0)])
        b = LineString([(5, 0), (10, 0)])
        assert geom.coordinates(geom.append(a, b, conditional=True)) == [(0, 0), (5, 0), (10, 0)]

    def test_unconditional_append(self):
        """Test that an unconditional append joins any two lines."""
        a = LineString([(0, 0), (5, 0)])
        b = LineString([(6, 0), (10, 0)])
        assert geom.coordinates(geom.append(a, b)) == [(0, 0), (5, 0), (6, 0), (10, 0)]

    def test_reverse(self):
        """Test vertex order reversal."""
        line = LineString([(0, 0), (5, 0), (5, 5)])
        assert geom.coordinates(geom.reverse(line)) == [(5, 5), (5, 0), (0, 0)]

    def test_between(self):
        """Test connector from the end of one line to the start of another."""
        a = LineString([(0, 0), (4, 0)])
        b = LineString([(6, 0), (10, 0)])
        assert geom.coordinates(geom.between(a, b)) == [(4, 0), (6, 0)]

    def test_between_touching_lines(self):
        """Test that touching lines have no connector."""
        a = LineString([(0, 0), (4, 0)])
        b = LineString([(4, 0), (10, 0)])
        assert geom.between(a, b) is None


class TestParsing:
    """Tests for line text parsing and empty markers."""

    def test_parse_wkt(self):
        """Test parsing of LineString text."""
        line = geom.parse_linestring("LINESTRING (0 0, 10 0)")
        assert geom.coordinates(line) == [(0, 0), (10, 0)]

    def test_parse_drops_z(self):
        """Test that 3D lines are flattened."""
        line = geom.parse_linestring("LINESTRING Z (0 0 1, 10 0 2)")
        assert not line.has_z
        assert geom.coordinates(line) == [(0, 0), (10, 0)]

    def test_parse_accepts_geometry(self):
        """Test that geometries pass through."""
        line = LineString([(0, 0), (1, 1)])
        assert geom.parse_linestring(line).equals(line)

    def test_parse_merges_multilinestring(self):
        """Test that a MultiLineString forming one path is merged."""
        multi = MultiLineString([[(0, 0), (5, 0)], [(5, 0), (10, 0)]])
        line = geom.parse_linestring(multi)
        assert isinstance(line, LineString)
        assert line.length == pytest.approx(10.0)

    @pytest.mark.parametrize("value", ["", "POINT EMPTY", "LINESTRING EMPTY", None, "not a geometry", "POINT (1 1)"])
    def test_parse_rejects(self, value):
        """Test that empty, unparsable and non-line values are malformed."""
        with pytest.raises(MalformedGeometry):
            geom.parse_linestring(value)

    def test_empty_markers(self):
        """Test the values that mean no geometry."""
        assert geom.is_empty_marker(None)
        assert geom.is_empty_marker(float("nan"))
        assert geom.is_empty_marker("point empty")
        assert geom.is_empty_marker(LineString())
        assert not geom.is_empty_marker("LINESTRING (0 0, 1 1)")
        assert not geom.is_empty_marker(LineString([(0, 0), (1, 1)]))

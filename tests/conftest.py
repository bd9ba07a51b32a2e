"""Pytest configuration and fixtures."""

import itertools

import pytest
from shapely.geometry import LineString

from tnfuse.attributes import Attribute, AttributeKind, Direction
from tnfuse.fragment import Fragment
from tnfuse.io import AttributeRow, EdgeRow
from tnfuse.link import Link
from tnfuse.network import Network
from tnfuse.types import FuseConfig


@pytest.fixture
def default_config():
    """Default FuseConfig for testing."""
    return FuseConfig(
        progress_bar=False,  # Disable progress bars in tests
        verbose=0,  # Quiet logging in tests
    )


@pytest.fixture
def straight_line():
    """Ten metre line along the x axis."""
    return LineString([(0, 0), (10, 0)])


@pytest.fixture
def speed():
    """Factory for speed limit attributes."""
    def _speed(value=50.0, direction=Direction.WITH):
        return Attribute(AttributeKind.SPEED_LIMIT, direction, value)
    return _speed


@pytest.fixture
def make_edge():
    """Factory for edge fragments from coordinate lists."""
    def _make_edge(coords, measure_from, measure_to, from_node="N1", to_node="N2", parent_id="L1", attributes=None):
        return Fragment.edge(
            parent_id, LineString(coords), measure_from, measure_to, from_node, to_node, attributes
        )
    return _make_edge


@pytest.fixture
def make_observation():
    """Factory for attribute fragments from coordinate lists."""
    def _make_observation(coords, measure_from, measure_to, attributes, parent_id="L1"):
        geometry = LineString(coords) if coords is not None else None
        return Fragment.observation(parent_id, geometry, measure_from, measure_to, attributes)
    return _make_observation


@pytest.fixture
def names():
    """Synthetic node sequence, as used by a network."""
    return itertools.count(1)


@pytest.fixture
def single_link(make_edge):
    """Link L1 with one edge fragment N1 -> N2 along (0 0, 10 0)."""
    return Link("L1", make_edge([(0, 0), (10, 0)], 0.0, 1.0))


@pytest.fixture
def split_link(make_edge):
    """Link L1 made of two edge fragments meeting at node M at x=5."""
    link = Link("L1", make_edge([(0, 0), (5, 0)], 0.0, 0.5, "N1", "M"))
    link.add(make_edge([(5, 0), (10, 0)], 0.5, 1.0, "M", "N2"))
    return link


@pytest.fixture
def l1_network(default_config):
    """Network holding the single edge L1 (0 0, 10 0) from N1 to N2."""
    network = Network(default_config)
    network.add_edges([EdgeRow("L1", 0.0, 1.0, "N1", "N2", "LINESTRING (0 0, 10 0)")])
    return network


@pytest.fixture
def speed_row():
    """Factory for speed limit attribute rows on L1."""
    def _speed_row(measure_from, measure_to, geometry, value=50.0, direction=Direction.WITH, parent_id="L1"):
        return AttributeRow(parent_id, measure_from, measure_to, geometry, value, direction=direction)
    return _speed_row


@pytest.fixture
def edges_csv(tmp_path):
    """Edge table with two links sharing node N2."""
    path = tmp_path / "edges.csv"
    path.write_text(
        "parent_id;measure_from;measure_to;from_node_id;to_node_id;geometry\n"
        "L1;0.0;1.0;N1;N2;LINESTRING (0 0, 10 0)\n"
        "L2;0.0;1.0;N2;N3;LINESTRING (10 0, 10 10)\n"
    )
    return path


@pytest.fixture
def speed_csv(tmp_path):
    """Speed limit table with one observation in the middle of L1."""
    path = tmp_path / "speed.csv"
    path.write_text(
        "parent_id;measure_from;measure_to;geometry;value;value_type;direction\n"
        "L1;0.2;0.6;LINESTRING (2 0, 6 0);50;real;1\n"
    )
    return path

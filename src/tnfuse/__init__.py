"""tnfuse - Transport Network attribute Fusion

A small Python package to fuse independently segmented attribute sources
onto one road network.
"""

__version__ = "0.1.0"

from .attributes import Attribute, AttributeKind, Direction, ValueType
from .fragment import Fragment, FragmentKind
from .graph import Node
from .io import AttributeRow, EdgeRow
from .link import Link
from .network import Network
from .pipeline import fuse_network
from .types import FuseConfig, FuseStats

__all__ = [
    "fuse_network",
    "FuseConfig",
    "FuseStats",
    "Network",
    "Link",
    "Node",
    "Fragment",
    "FragmentKind",
    "Attribute",
    "AttributeKind",
    "Direction",
    "ValueType",
    "EdgeRow",
    "AttributeRow",
]

"""Merge adjacent, property-equal fragments into longer fragments."""

import logging
from typing import List

from . import geometry as geom
from .fragment import Fragment

logger = logging.getLogger(__name__)


def sort_fragments(fragments: List[Fragment]) -> List[Fragment]:
    """Sort in place by start measure (stable) and return the list."""
    fragments.sort(key=lambda f: f.measure_from)
    return fragments


def consolidate(fragments: List[Fragment], new_fragment: Fragment) -> List[Fragment]:
    """Insert ``new_fragment`` into a list sorted by start measure.

    If a property-equal fragment ends exactly where the new one starts, that
    fragment is extended forward to absorb it; if it starts exactly where the
    new one ends, it is extended backward. Otherwise the new fragment is
    appended. The list is re-sorted before it is returned.
    """
    for existing in fragments:
        if not existing.property_equal(new_fragment):
            continue

        if existing.end == new_fragment.start:
            existing.geometry = geom.append(existing.geometry, new_fragment.geometry)
            existing.measure_to = new_fragment.measure_to
            existing.to_node_id = new_fragment.to_node_id
            break

        if new_fragment.end == existing.start:
            existing.geometry = geom.append(new_fragment.geometry, existing.geometry)
            existing.measure_from = new_fragment.measure_from
            existing.from_node_id = new_fragment.from_node_id
            break
    else:
        fragments.append(new_fragment)

    return sort_fragments(fragments)


def consolidate_without_geometry(fragments: List[Fragment], fragment: Fragment) -> List[Fragment]:
    """Give a geometry-less fragment a connector geometry, then consolidate it.

    The connector runs from the end of the fragment's predecessor to the
    start of its successor in measure order. A fragment with no predecessor
    or no successor cannot be placed and is dropped with a log message.
    """
    sort_fragments(fragments)

    predecessor = None
    successor = None
    for candidate in fragments:
        if candidate.measure_to <= fragment.measure_from:
            predecessor = candidate
        elif candidate.measure_from >= fragment.measure_to and successor is None:
            successor = candidate

    if predecessor is None or successor is None:
        logger.warning(
            f"Could not create geometry for attribute (it is probably first or last in the list): "
            f"{fragment.describe()}"
        )
        return fragments

    connector = geom.between(predecessor.geometry, successor.geometry)
    if connector is None:
        logger.warning(
            f"Neighbours of attribute {fragment.describe()} touch, no gap to fill; dropping it"
        )
        return fragments

    fragment.geometry = connector
    return consolidate(fragments, fragment)

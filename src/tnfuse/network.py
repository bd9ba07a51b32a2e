"""The fused road network: ingestion, attribute overlay and cleaning."""

import itertools
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from . import geometry as geom
from .attributes import Attribute, AttributeKind, Direction, spec_for
from .consolidate import consolidate, consolidate_without_geometry
from .errors import MalformedGeometry, OverlapRejected, ValidationError
from .fragment import Fragment
from .graph import Node
from .io import AttributeRow, EdgeRow, parse_direction, parse_value, parse_value_type
from .link import Link
from .types import FuseConfig, FuseStats

logger = logging.getLogger(__name__)


class Network:
    """Links and nodes of a road network plus the attributes fused onto them.

    ``links`` maps parent id to :class:`Link`, ``nodes`` maps node id to
    :class:`Node`. Every edge fragment's node ids are keys of ``nodes``.
    """

    def __init__(self, config: Optional[FuseConfig] = None):
        self.config = config or FuseConfig()
        self.links: Dict[str, Link] = {}
        self.nodes: Dict[str, Node] = {}
        self.stats = FuseStats()
        self._names = itertools.count(1)

    def __repr__(self) -> str:
        return f"Network({len(self.links)} links, {len(self.nodes)} nodes)"

    def fragment_count(self) -> int:
        return sum(len(link) for link in self.links.values())

    def iter_fragments(self) -> Iterator[Fragment]:
        for link in self.links.values():
            yield from link

    # Edge ingestion

    def add_edges(self, rows: Iterable[EdgeRow]) -> int:
        """Ingest edge rows, one edge fragment per row.

        Rows are read in full before the network is touched, so an error
        raised by the row source leaves the network unchanged.

        Returns:
            Number of fragments added.
        """
        rows = list(rows)
        added = 0
        for row in rows:
            if self.add_edge(row):
                added += 1
        logger.info(f"Ingested {added} of {len(rows)} edge rows into {len(self.links)} links")
        return added

    def add_edge(self, row: EdgeRow) -> bool:
        """Ingest one edge row. Bad rows are logged and skipped.

        Returns:
            True if the fragment was added to its link.
        """
        self.stats.edge_rows += 1
        try:
            line = geom.parse_linestring(row.geometry)
        except MalformedGeometry as e:
            logger.warning(f"Skipping edge {row.parent_id};{row.measure_from};{row.measure_to}: {e}")
            self.stats.edges_rejected_geometry += 1
            return False

        try:
            fragment = Fragment.edge(
                row.parent_id,
                line,
                row.measure_from,
                row.measure_to,
                row.from_node_id,
                row.to_node_id,
            )
        except ValidationError as e:
            logger.warning(f"Could not create edge fragment for {row.parent_id}: {e}")
            self.stats.edges_rejected_validation += 1
            return False

        link = self.links.get(row.parent_id)
        if link is None:
            self.links[row.parent_id] = Link(row.parent_id, fragment)
        else:
            try:
                link.add(fragment, self.config.match_tolerance)
            except OverlapRejected as e:
                logger.warning(f"Rejected edge fragment of {row.parent_id}: {e}")
                self.stats.edges_rejected_overlap += 1
                return False

        self.nodes.setdefault(row.from_node_id, Node(row.from_node_id, fragment.start))
        self.nodes.setdefault(row.to_node_id, Node(row.to_node_id, fragment.end))
        self.stats.edge_fragments_added += 1
        return True

    # Attribute ingestion

    def add_attributes(self, rows: Iterable[AttributeRow], kind: AttributeKind) -> int:
        """Fuse one attribute source of ``kind`` into the network.

        Rows must be sorted by parent id, then start measure. Rows out of that
        order are counted and logged but not reordered. Rows for parent ids
        the network does not know are ignored.

        Consecutive rows of one parent are folded into a group: a row equal
        to an earlier one in everything but direction widens that one to
        WITH_AND_AGAINST, other rows are consolidated into the group, and rows
        without geometry are placed between their neighbours once the group
        is complete. Each fragment of the group is then overlaid onto the
        parent's link.

        Returns:
            Number of groups overlaid.
        """
        spec_for(kind)
        kind = AttributeKind(kind)
        rows = list(rows)
        self._check_order(rows)

        groups = 0
        for parent_id, group in itertools.groupby(rows, key=lambda r: r.parent_id):
            group = list(group)
            self.stats.attribute_rows += len(group)
            if parent_id not in self.links:
                logger.debug(f"Ignoring {len(group)} {kind.value} rows for unknown parent {parent_id}")
                self.stats.attributes_unknown_parent += len(group)
                continue

            fragments = self._build_group(group, kind)
            if fragments:
                self.apply_attribute_group(fragments)
                groups += 1

        logger.info(f"Fused {kind.value}: {groups} groups over {len(rows)} rows")
        return groups

    def _check_order(self, rows: Sequence[AttributeRow]) -> None:
        for previous, row in zip(rows, rows[1:]):
            if (row.parent_id, row.measure_from) < (previous.parent_id, previous.measure_from):
                logger.warning(
                    f"Attribute row {row.parent_id};{row.measure_from} comes after "
                    f"{previous.parent_id};{previous.measure_from}; rows must be sorted by "
                    f"parent id and start measure"
                )
                self.stats.attributes_out_of_order += 1

    def _observation(self, row: AttributeRow, kind: AttributeKind) -> Optional[Fragment]:
        """Attribute fragment for a row, or None (logged) if the row is malformed."""
        try:
            spec = spec_for(kind)
            value = row.value
            if row.value_type is not None:
                declared = parse_value_type(row.value_type)
                if declared is not spec.value_type:
                    raise ValidationError(
                        f"{kind.value}: declared type {declared.value} does not match "
                        f"expected {spec.value_type.value}",
                        kind=kind.value,
                        expected_type=spec.value_type.value,
                        expected_range=spec.range,
                    )
                value = parse_value(row.value, declared)
            else:
                value = parse_value(value, spec.value_type)
            line = None if geom.is_empty_marker(row.geometry) else geom.parse_linestring(row.geometry)
            attribute = Attribute(kind, parse_direction(row.direction), value)
            return Fragment.observation(row.parent_id, line, row.measure_from, row.measure_to, [attribute])
        except MalformedGeometry as e:
            logger.warning(f"Skipping attribute {row.parent_id};{row.measure_from};{row.measure_to}: {e}")
            self.stats.attributes_rejected_geometry += 1
        except ValidationError as e:
            logger.warning(f"Skipping attribute {row.parent_id};{row.measure_from};{row.measure_to}: {e}")
            self.stats.attributes_rejected_validation += 1
        return None

    def _build_group(self, rows: Sequence[AttributeRow], kind: AttributeKind) -> List[Fragment]:
        fragments: List[Fragment] = []
        without_geometry: List[Fragment] = []

        for row in rows:
            observation = self._observation(row, kind)
            if observation is None:
                continue
            if observation.geometry is None:
                without_geometry.append(observation)
                self.stats.attributes_without_geometry += 1
                continue
            if not self._widen_duplicate(fragments, observation):
                fragments = consolidate(fragments, observation)

        for observation in without_geometry:
            before = len(fragments)
            fragments = consolidate_without_geometry(fragments, observation)
            if observation.geometry is None:
                self.stats.attributes_dropped_no_neighbour += 1
            elif len(fragments) == before:
                logger.debug(f"Attribute {observation.describe()} merged into a neighbour")

        return fragments

    def _widen_duplicate(self, fragments: List[Fragment], observation: Fragment) -> bool:
        """Widen the direction of an existing copy of ``observation``.

        A copy has the same parent, geometry (within the duplicate tolerance),
        measures and values. Where a directional attribute of the copy points
        differently, it becomes WITH_AND_AGAINST.

        Returns:
            True if a copy was widened and ``observation`` should be dropped.
        """
        widened = False
        for existing in fragments:
            if not self._same_observation(existing, observation):
                continue
            for kind, attribute in observation.attributes.items():
                current = existing.attributes[kind]
                if attribute.directional and current.direction != attribute.direction:
                    existing.attributes[kind] = current.with_direction(Direction.WITH_AND_AGAINST)
                    widened = True
        if widened:
            self.stats.directions_widened += 1
        return widened

    def _same_observation(self, existing: Fragment, observation: Fragment) -> bool:
        if existing.parent_id != observation.parent_id:
            return False
        if not existing.geometry.equals_exact(observation.geometry, self.config.duplicate_geometry_tolerance):
            return False
        if (existing.measure_from, existing.measure_to) != (observation.measure_from, observation.measure_to):
            return False
        if existing.attributes.keys() != observation.attributes.keys():
            return False
        return all(
            existing.attributes[kind].value == attribute.value
            for kind, attribute in observation.attributes.items()
        )

    def apply_attribute_group(self, fragments: Sequence[Fragment]) -> None:
        """Overlay each attribute fragment, in order, onto its parent's link."""
        if not fragments:
            return
        link = self.links.get(fragments[0].parent_id)
        if link is None:
            return
        for fragment in fragments:
            if fragment.geometry is None:
                continue
            self._overlay_with_retry(link, fragment)

    def _tolerance_ladder(self) -> Iterator[float]:
        """Nominal tolerance, then each retry tolerance up to the ceiling."""
        tolerance = self.config.tolerance
        while tolerance <= self.config.tolerance_max:
            yield tolerance
            tolerance *= self.config.retry_multiplier

    def _overlay_with_retry(self, link: Link, observation: Fragment) -> bool:
        """Overlay ``observation``, retrying failed cuts at growing tolerance.

        Walks :meth:`_tolerance_ladder`. Only the fragments whose cut failed
        are retried at the next tolerance, so the attribute is applied at
        most once to each fragment.

        Returns:
            True if every cut eventually succeeded.
        """
        targets: Optional[List[Fragment]] = None
        for tolerance in self._tolerance_ladder():
            if targets is not None:
                self.stats.split_retries += 1
                logger.debug(f"Retrying attribute {observation.describe()} at tolerance {tolerance:g}")

            result = link.overlay(
                observation,
                self._names,
                tolerance,
                self.config.allow_slack,
                self.config.match_tolerance,
                only=targets,
            )
            self.stats.overlays_applied += 1
            self.stats.splits_performed += result.splits
            for node in result.new_nodes:
                if node.id not in self.nodes:
                    self.nodes[node.id] = node
                    self.stats.synthetic_nodes_created += 1

            if not result.failed:
                if targets is not None:
                    logger.info(f"Attribute {observation.describe()} succeeded at a tolerance of {tolerance:g}")
                return True

            self.stats.split_failures += len(result.failed)
            targets = result.failed

        logger.warning(
            f"FAILED to add attribute {observation.describe()} to link {link.id}; "
            f"tolerance ceiling {self.config.tolerance_max:g} reached"
        )
        self.stats.attributes_abandoned += 1
        return False

    # Cleaning

    def clean(self) -> None:
        """Align every link, merge fragments across pass-through nodes, prune nodes."""
        self._align()

        for link in self.links.values():
            before = len(link)
            result = link.clean(self.nodes)
            self.stats.attributes_filled += result.filled
            self.stats.fragments_merged += before - len(link)

            for node_id in result.removed_nodes:
                node = self.nodes.get(node_id)
                if node is None:
                    continue
                node.remove_incoming(link.id)
                node.remove_outgoing(link.id)
                if node.degree == (0, 0):
                    del self.nodes[node_id]
                    self.stats.nodes_removed += 1

        self._forbid_turns()
        logger.info(
            f"Cleaned network: {self.fragment_count()} fragments, {len(self.nodes)} nodes, "
            f"{self.stats.nodes_removed} nodes removed"
        )

    def _align(self) -> None:
        """Align all fragments, then rebuild node incoming/outgoing sets."""
        for node in self.nodes.values():
            node.incoming.clear()
            node.outgoing.clear()

        for link in self.links.values():
            self.stats.fragments_aligned += link.align()

        for link in self.links.values():
            for fragment in link:
                if fragment.from_node_id in self.nodes:
                    self.nodes[fragment.from_node_id].add_outgoing(link.id)
                if fragment.to_node_id in self.nodes:
                    self.nodes[fragment.to_node_id].add_incoming(link.id)

    def _forbid_turns(self) -> None:
        """Extension point for deriving forbidden turns. Does nothing yet."""

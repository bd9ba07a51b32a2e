"""All edge fragments of one parent edge, and the attribute overlay on them."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set

from . import geometry as geom
from .consolidate import consolidate, sort_fragments
from .errors import OverlapRejected, SplitFailure
from .fragment import Fragment
from .graph import Node

logger = logging.getLogger(__name__)


@dataclass
class OverlayResult:
    """Outcome of overlaying one observation onto a link."""

    new_nodes: Set[Node] = field(default_factory=set)
    failed: List[Fragment] = field(default_factory=list)
    splits: int = 0
    tagged: int = 0


@dataclass
class CleanResult:
    """Outcome of cleaning one link."""

    removed_nodes: List[str] = field(default_factory=list)
    filled: int = 0


class Link:
    """Owner of every edge fragment sharing one parent id.

    No two fragments on a link may have common geometry; :meth:`add`
    rejects a fragment that would.
    """

    def __init__(self, link_id: str, first_fragment: Optional[Fragment] = None):
        self.id = link_id
        self.fragments: List[Fragment] = []
        if first_fragment is not None:
            self.fragments.append(first_fragment)

    def __len__(self) -> int:
        return len(self.fragments)

    def __iter__(self) -> Iterator[Fragment]:
        return iter(self.fragments)

    def __repr__(self) -> str:
        return f"Link({self.id!r}, {len(self.fragments)} fragments)"

    def add(self, fragment: Fragment, tolerance: float = geom.DEFAULT_TOLERANCE) -> None:
        """Append ``fragment`` unless it overlaps one already on the link.

        Raises:
            OverlapRejected: if the new fragment has common geometry with an existing one
        """
        for existing in self.fragments:
            if existing.has_common_geometry(fragment, tolerance):
                raise OverlapRejected(
                    f"Fragment {fragment.describe()} occupies space already occupied by "
                    f"{existing.describe()}"
                )
        self.fragments.append(fragment)

    @property
    def start_node_id(self) -> Optional[str]:
        """From-node of the fragment with the lowest start measure."""
        if not self.fragments:
            return None
        return min(self.fragments, key=lambda f: f.measure_from).from_node_id

    @property
    def end_node_id(self) -> Optional[str]:
        """To-node of the fragment with the highest end measure."""
        if not self.fragments:
            return None
        return max(self.fragments, key=lambda f: f.measure_to).to_node_id

    # Overlay

    def overlay(
        self,
        observation: Fragment,
        name_sequence: Iterator[int],
        tolerance: float = geom.DEFAULT_TOLERANCE,
        allow_slack: bool = True,
        match_tolerance: float = geom.DEFAULT_TOLERANCE,
        only: Optional[Sequence[Fragment]] = None,
    ) -> OverlayResult:
        """Cut and tag this link's fragments with one observation.

        Every fragment ``e`` is compared with the observation ``a``; the first
        matching case applies:

        1. ``e`` lies within ``a`` (or both share endpoints within tolerance):
           ``a``'s attributes are merged into ``e``.
        2. ``a`` lies strictly inside ``e``: ``e`` is cut in three, the middle
           part takes ``a``'s measures and attributes.
        3. The end of ``e`` lies on ``a``: ``e`` is cut at ``a``'s start and
           the tail takes ``a``'s attributes.
        4. The end of ``a`` lies on ``e``: ``e`` is cut at ``a``'s end and the
           head takes ``a``'s attributes.

        A cut fragment keeps its place in the sequence as the first returned
        part; new parts are inserted immediately after it. Synthetic boundary
        nodes are named ``"<a.parent_id>:<n>"`` with ``n`` from
        ``name_sequence``.

        A cut that cannot be made at ``tolerance`` is logged and the fragment
        is left unchanged and reported in ``OverlayResult.failed``, so the
        caller can retry just those fragments. The first failure of each
        fragment is logged at WARNING; failures while retrying (``only`` set)
        are logged at DEBUG. With ``only`` set, fragments not in it are
        skipped.
        """
        result = OverlayResult()
        targets = None if only is None else {id(f) for f in only}
        rebuilt: List[Fragment] = []

        for fragment in self.fragments:
            if targets is not None and id(fragment) not in targets:
                rebuilt.append(fragment)
                continue

            try:
                parts = self._overlay_one(fragment, observation, name_sequence, tolerance, allow_slack, match_tolerance, result)
            except SplitFailure as e:
                logger.log(
                    logging.WARNING if only is None else logging.DEBUG,
                    f"Failed to add attribute {observation.describe()} on fragment "
                    f"{fragment.describe()} at tolerance {e.tolerance:g}: {e}"
                )
                result.failed.append(fragment)
                parts = [fragment]

            rebuilt.extend(parts)

        self.fragments = rebuilt
        return result

    def _overlay_one(
        self,
        e: Fragment,
        a: Fragment,
        name_sequence: Iterator[int],
        tolerance: float,
        allow_slack: bool,
        match_tolerance: float,
        result: OverlayResult,
    ) -> List[Fragment]:
        same_endpoints = (
            geom.points_close(a.start, e.start, match_tolerance)
            and geom.points_close(a.end, e.end, match_tolerance)
        )

        if e.is_within(a, match_tolerance) or same_endpoints:
            e.merge_attributes(a)
            result.tagged += 1
            return [e]

        if a.is_completely_within(e, match_tolerance):
            first, middle, last = self._split(e, [a.start, a.end], tolerance, allow_slack)
            n1 = self._new_node(a, a.start, name_sequence)
            n2 = self._new_node(a, a.end, name_sequence)

            middle_part = e.split_off(middle, a.measure_from, a.measure_to, n1.id, n2.id)
            middle_part.merge_attributes(a)
            last_part = e.split_off(last, a.measure_to, e.measure_to, n2.id, e.to_node_id)

            e.geometry = first
            e.measure_to = a.measure_from
            e.to_node_id = n1.id

            result.new_nodes.update((n1, n2))
            result.splits += 1
            return [e, middle_part, last_part]

        if e.ends_within(a, match_tolerance) and e.end != a.start:
            head, tail = self._split(e, [a.start], tolerance, allow_slack)
            n1 = self._new_node(a, a.start, name_sequence)

            tail_part = e.split_off(tail, a.measure_from, e.measure_to, n1.id, e.to_node_id)
            tail_part.merge_attributes(a)

            e.geometry = head
            e.measure_to = a.measure_from
            e.to_node_id = n1.id

            result.new_nodes.add(n1)
            result.splits += 1
            return [e, tail_part]

        # Must stay after the previous case: a.ends_within(e) also holds there.
        if a.ends_within(e, match_tolerance) and a.end != e.start:
            head, tail = self._split(e, [a.end], tolerance, allow_slack)
            n2 = self._new_node(a, a.end, name_sequence)

            head_part = e.split_off(head, e.measure_from, a.measure_to, e.from_node_id, n2.id)
            head_part.merge_attributes(a)

            e.geometry = tail
            e.measure_from = a.measure_to
            e.from_node_id = n2.id

            result.new_nodes.add(n2)
            result.splits += 1
            return [e, head_part]

        return [e]

    @staticmethod
    def _split(fragment: Fragment, points, tolerance: float, allow_slack: bool):
        parts = geom.split_by(fragment.geometry, points, tolerance, allow_slack)
        if parts is None:
            raise SplitFailure(f"could not cut {fragment.describe()} at {list(points)}", tolerance)
        return parts

    @staticmethod
    def _new_node(observation: Fragment, point, name_sequence: Iterator[int]) -> Node:
        return Node(f"{observation.parent_id}:{next(name_sequence)}", point, synthetic=True)

    # Cleaning

    def align(self) -> int:
        """Align every fragment to the travel direction, sorted by start measure.

        Returns:
            Number of fragments that were reoriented.
        """
        sort_fragments(self.fragments)
        return sum(1 for fragment in self.fragments if fragment.align())

    def clean(self, nodes: Dict[str, Node]) -> CleanResult:
        """Fill missing attributes from neighbours and merge across pass-through nodes.

        Fragments are sorted by start measure. Each fragment first borrows the
        attributes it lacks from its neighbour (see
        :meth:`Fragment.fill_missing_from`). Then, walking in order, a fragment
        whose from-node has exactly one incoming and one outgoing link is
        consolidated into the accumulated list.

        Returns:
            The ids of the boundary nodes that were merged away and the
            number of attributes copied between neighbours.
        """
        result = CleanResult()
        fragments = sort_fragments(list(self.fragments))

        if len(fragments) < 2:
            return result

        for current, neighbour in zip(fragments, fragments[1:]):
            result.filled += len(current.fill_missing_from(neighbour, self._connected(current, neighbour, nodes)))
        last, before = fragments[-1], fragments[-2]
        result.filled += len(last.fill_missing_from(before, self._connected(before, last, nodes)))

        cleaned = [fragments[0]]
        for fragment in fragments[1:]:
            boundary = nodes.get(fragment.from_node_id)
            if boundary is not None and boundary.is_pass_through:
                count = len(cleaned)
                cleaned = consolidate(cleaned, fragment)
                if len(cleaned) == count:
                    result.removed_nodes.append(boundary.id)
            else:
                cleaned.append(fragment)

        self.fragments = cleaned
        return result

    def _connected(self, first: Fragment, second: Fragment, nodes: Dict[str, Node]) -> bool:
        """True if the two fragments meet at a node this link passes through."""
        shared = {first.to_node_id, first.from_node_id} & {second.from_node_id, second.to_node_id}
        return any(
            node_id in nodes and nodes[node_id].connects(self.id)
            for node_id in shared
        )

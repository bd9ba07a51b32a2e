"""Graph vertices and node-degree bookkeeping."""

from typing import Dict, Iterable, Set, Tuple

from shapely.geometry import Point

from . import geometry as geom


class Node:
    """A network vertex identified by its id.

    ``incoming`` and ``outgoing`` hold the ids of the links that end and
    start at the node; their sizes are the node's degree. Synthetic nodes
    are created during attribute overlay, the others come from the edge
    source. Two nodes are equal when id and synthetic flag match.
    """

    def __init__(self, node_id: str, point, synthetic: bool = False):
        self.id = node_id
        self.point = Point(geom.as_coordinate(point))
        self.synthetic = synthetic
        self.incoming: Set[str] = set()
        self.outgoing: Set[str] = set()
        self.forbidden_turns: Set[Tuple[str, str]] = set()

    def __eq__(self, other) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return (self.id, self.synthetic) == (other.id, other.synthetic)

    def __hash__(self) -> int:
        return hash((self.id, self.synthetic))

    def __repr__(self) -> str:
        flag = ", synthetic" if self.synthetic else ""
        return f"Node({self.id!r}{flag}, in={sorted(self.incoming)}, out={sorted(self.outgoing)})"

    @property
    def degree(self) -> Tuple[int, int]:
        """``(number of incoming links, number of outgoing links)``."""
        return (len(self.incoming), len(self.outgoing))

    @property
    def is_pass_through(self) -> bool:
        """Exactly one link in and one link out."""
        return self.degree == (1, 1)

    def connects(self, link_id: str) -> bool:
        """True if ``link_id`` both ends and starts here."""
        return link_id in self.incoming and link_id in self.outgoing

    def add_incoming(self, link_id: str) -> None:
        self.incoming.add(link_id)

    def add_outgoing(self, link_id: str) -> None:
        self.outgoing.add(link_id)

    def remove_incoming(self, link_id: str) -> None:
        self.incoming.discard(link_id)

    def remove_outgoing(self, link_id: str) -> None:
        self.outgoing.discard(link_id)

    def forbid_turn(self, from_link: str, to_link: str) -> None:
        """Record the turn ``from_link -> to_link`` as forbidden. U-turn pairs are ignored."""
        if from_link != to_link:
            self.forbidden_turns.add((from_link, to_link))

    def is_turn_forbidden(self, from_link: str, to_link: str) -> bool:
        return (from_link, to_link) in self.forbidden_turns

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "synthetic": self.synthetic,
            "geometry": self.point,
        }


def degree_distribution(nodes: Iterable[Node]) -> Dict[str, int]:
    """Count nodes by degree class, for reports."""
    counts = {"isolated": 0, "dead_end": 0, "pass_through": 0, "junction": 0, "synthetic": 0}
    for node in nodes:
        incoming, outgoing = node.degree
        if node.synthetic:
            counts["synthetic"] += 1
        if incoming + outgoing == 0:
            counts["isolated"] += 1
        elif incoming == 0 or outgoing == 0:
            counts["dead_end"] += 1
        elif node.is_pass_through:
            counts["pass_through"] += 1
        else:
            counts["junction"] += 1
    return counts

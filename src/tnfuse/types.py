"""Core data types and configuration for tnfuse."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .attributes import AttributeKind


@dataclass
class FuseConfig:
    """Configuration for the tnfuse pipeline.

    All distance tolerances are in the units of ``crs``, which must be a
    projected CRS (metres for the default SWEREF 99 TM).
    """

    # CRS
    crs: str = "EPSG:3006"

    # Overlay tolerances
    tolerance: float = 1e-10
    tolerance_max: float = 0.1
    retry_multiplier: float = 1.1
    allow_slack: bool = True
    match_tolerance: float = 1e-10
    duplicate_geometry_tolerance: float = 0.1

    # Output
    attribute_kinds: List[AttributeKind] = field(default_factory=lambda: list(AttributeKind))
    write_dirty: bool = False
    log_file: Optional[str] = None

    # Processing options
    progress_bar: bool = True
    verbose: int = 0

    # Metadata
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.tolerance <= 0:
            raise ValueError("tolerance must be positive")
        if self.tolerance_max < self.tolerance:
            raise ValueError("tolerance_max must not be below tolerance")
        if self.retry_multiplier <= 1:
            raise ValueError("retry_multiplier must be greater than 1")
        if self.match_tolerance <= 0:
            raise ValueError("match_tolerance must be positive")
        if self.duplicate_geometry_tolerance < 0:
            raise ValueError("duplicate_geometry_tolerance must be non-negative")
        if not (0 <= self.verbose <= 2):
            raise ValueError("verbose must be in [0,2]")
        try:
            self.attribute_kinds = [AttributeKind(kind) for kind in self.attribute_kinds]
        except ValueError as e:
            raise ValueError(f"Unknown attribute kind in attribute_kinds: {e}") from e


@dataclass
class FuseStats:
    """Statistics collected during processing."""

    # Ingestion statistics
    edge_rows: int = 0
    edge_fragments_added: int = 0
    edges_rejected_validation: int = 0
    edges_rejected_geometry: int = 0
    edges_rejected_overlap: int = 0

    # Attribute statistics
    attribute_rows: int = 0
    attributes_rejected_validation: int = 0
    attributes_rejected_geometry: int = 0
    attributes_unknown_parent: int = 0
    attributes_out_of_order: int = 0
    directions_widened: int = 0
    attributes_without_geometry: int = 0
    attributes_dropped_no_neighbour: int = 0

    # Overlay statistics
    overlays_applied: int = 0
    splits_performed: int = 0
    split_failures: int = 0
    split_retries: int = 0
    attributes_abandoned: int = 0
    synthetic_nodes_created: int = 0

    # Cleaning statistics
    fragments_aligned: int = 0
    attributes_filled: int = 0
    fragments_merged: int = 0
    nodes_removed: int = 0

    # Performance metrics
    processing_time: float = 0.0

"""Main pipeline orchestration for tnfuse."""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pyproj import CRS
from pyproj.exceptions import CRSError
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from . import __version__
from .attributes import AttributeKind
from .errors import SinkUnavailable
from .graph import degree_distribution
from .io import (
    attribute_rows_from_frame,
    edge_rows_from_frame,
    read_table,
    rows_summary,
    sort_attribute_rows,
    write_edges,
    write_nodes,
)
from .network import Network
from .types import FuseConfig

logger = logging.getLogger(__name__)
console = Console()

AttributeSources = Union[Mapping[str, str], Iterable[Tuple[str, str]]]

NODES_FILE = "nodes.csv"
EDGES_FILE = "edges.csv"
DIRTY_NODES_FILE = "nodes_dirty.csv"
DIRTY_EDGES_FILE = "edges_dirty.csv"


def fuse_network(
    edges_path: str,
    attribute_sources: AttributeSources,
    output_dir: str,
    config: Optional[FuseConfig] = None,
) -> Tuple[Network, Dict[str, Any]]:
    """Run the complete tnfuse pipeline.

    Fixed order: load edges → fuse each attribute source → (dirty snapshot) → clean → write tables

    Args:
        edges_path: Edge table (``;``-separated text or any geopandas-readable file)
        attribute_sources: ``(kind, path)`` pairs or a kind → path mapping, fused in order
        output_dir: Directory receiving the node and edge tables
        config: Configuration parameters

    Returns:
        Tuple of (fused Network, report dict)

    Raises:
        ValueError: On a non-projected CRS, unknown attribute kind or missing columns
        FileNotFoundError: If an input file doesn't exist
    """
    config = config or FuseConfig()
    start_time = time.time()
    sources = _resolve_sources(attribute_sources)
    output = Path(output_dir)
    sink_errors: List[str] = []

    file_handler = _setup_logging(config)
    logger.info(f"Starting tnfuse pipeline: {edges_path} + {len(sources)} attribute sources → {output}")

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TimeElapsedColumn(),
            console=console,
            disable=not config.progress_bar,
        ) as progress:

            # Task 1: Check CRS
            task1 = progress.add_task("Checking CRS...", total=None)
            crs = _check_crs(config.crs)
            progress.update(task1, total=1, completed=1, description=f"[green]OK[/green] CRS {crs.name}")

            # Task 2: Load edges
            task2 = progress.add_task("Loading edges...", total=None)
            network = Network(config)
            edge_rows = edge_rows_from_frame(read_table(edges_path))
            network.add_edges(edge_rows)
            input_links = len(network.links)
            input_fragments = network.fragment_count()
            progress.update(
                task2, total=1, completed=1,
                description=f"[green]OK[/green] Loaded {input_fragments} edge fragments on {input_links} links",
            )

            # Task 3: Fuse attributes
            task3 = progress.add_task("Fusing attributes...", total=len(sources))
            attribute_summary: Dict[str, Dict[str, int]] = {}
            for kind, path in sources:
                progress.update(task3, description=f"Fusing {kind.value}...")
                rows = sort_attribute_rows(attribute_rows_from_frame(read_table(path)))
                attribute_summary[kind.value] = rows_summary(rows)
                attribute_summary[kind.value]["groups"] = network.add_attributes(rows, kind)
                progress.advance(task3)
            fused_fragments = network.fragment_count()
            fused_nodes = len(network.nodes)
            progress.update(task3, description=f"[green]OK[/green] Fused {len(sources)} attribute sources")

            # Task 4: Dirty snapshot
            if config.write_dirty:
                task4 = progress.add_task("Writing dirty snapshot...", total=None)
                _write_outputs(network, output / DIRTY_NODES_FILE, output / DIRTY_EDGES_FILE, sink_errors)
                progress.update(task4, total=1, completed=1, description="[green]OK[/green] Dirty snapshot written")

            # Task 5: Clean
            task5 = progress.add_task("Cleaning network...", total=None)
            network.clean()
            progress.update(
                task5, total=1, completed=1,
                description=f"[green]OK[/green] Cleaned ({network.stats.nodes_removed} nodes removed)",
            )

            # Task 6: Export
            task6 = progress.add_task("Exporting results...", total=None)
            _write_outputs(network, output / NODES_FILE, output / EDGES_FILE, sink_errors)
            progress.update(task6, total=1, completed=1, description="[green]OK[/green] Results exported")

    except Exception as e:
        logger.error(f"Pipeline failed: {e}")
        raise
    finally:
        _teardown_logging(file_handler)

    network.stats.processing_time = time.time() - start_time

    report = _generate_report(
        network,
        config,
        crs,
        input_links=input_links,
        input_fragments=input_fragments,
        fused_fragments=fused_fragments,
        fused_nodes=fused_nodes,
        attribute_summary=attribute_summary,
        output_dir=output,
        sink_errors=sink_errors,
    )

    logger.info(f"Pipeline completed in {network.stats.processing_time:.2f}s")
    logger.info(f"Fragments {input_fragments} → {fused_fragments} after overlay → {network.fragment_count()} after cleaning")
    return network, report


def _resolve_sources(attribute_sources: AttributeSources) -> List[Tuple[AttributeKind, str]]:
    pairs = attribute_sources.items() if isinstance(attribute_sources, Mapping) else attribute_sources
    resolved = []
    for kind, path in pairs:
        try:
            resolved.append((AttributeKind(kind), str(path)))
        except ValueError:
            raise ValueError(f"Unknown attribute kind: {kind!r}") from None
    return resolved


def _setup_logging(config: FuseConfig) -> Optional[logging.Handler]:
    """Set the log level from ``verbose`` and attach the append-only log file, if any."""
    logging.basicConfig(
        level=logging.DEBUG if config.verbose >= 2 else
              logging.INFO if config.verbose >= 1 else
              logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if not config.log_file:
        return None

    Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(config.log_file, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    package_logger = logging.getLogger("tnfuse")
    package_logger.addHandler(handler)
    console.print(f"Info will be written to log: {config.log_file}")
    return handler


def _teardown_logging(handler: Optional[logging.Handler]) -> None:
    if handler is None:
        return
    logging.getLogger("tnfuse").removeHandler(handler)
    handler.close()


def _check_crs(crs_text: str) -> CRS:
    """Parse the configured CRS and require it to be projected."""
    try:
        crs = CRS.from_user_input(crs_text)
    except CRSError as e:
        raise ValueError(f"Invalid CRS {crs_text!r}: {e}") from e
    if not crs.is_projected:
        raise ValueError(f"CRS {crs_text} is not projected; tolerances need planar units")
    return crs


def _write_outputs(network: Network, nodes_path: Path, edges_path: Path, sink_errors: List[str]) -> None:
    """Write both tables. A failing sink is logged and does not stop the other."""
    try:
        write_nodes(network, nodes_path)
    except SinkUnavailable as e:
        logger.error(f"Failed to write nodes to file: {e}")
        sink_errors.append(str(e))
    try:
        write_edges(network, edges_path)
    except SinkUnavailable as e:
        logger.error(f"Failed to write network to file: {e}")
        sink_errors.append(str(e))


def _generate_report(
    network: Network,
    config: FuseConfig,
    crs: CRS,
    input_links: int,
    input_fragments: int,
    fused_fragments: int,
    fused_nodes: int,
    attribute_summary: Dict[str, Dict[str, int]],
    output_dir: Path,
    sink_errors: List[str],
) -> Dict[str, Any]:
    """Generate comprehensive processing report."""
    stats = network.stats
    return {
        # Counts through the pipeline
        'input_links': input_links,
        'input_fragments': input_fragments,
        'fused_fragments': fused_fragments,
        'fused_nodes': fused_nodes,
        'output_fragments': network.fragment_count(),
        'output_nodes': len(network.nodes),
        'node_degrees': degree_distribution(network.nodes.values()),

        # Edge ingestion
        'edge_rows': stats.edge_rows,
        'edges_rejected_validation': stats.edges_rejected_validation,
        'edges_rejected_geometry': stats.edges_rejected_geometry,
        'edges_rejected_overlap': stats.edges_rejected_overlap,

        # Attribute ingestion
        'attribute_sources': attribute_summary,
        'attribute_rows': stats.attribute_rows,
        'attributes_rejected_validation': stats.attributes_rejected_validation,
        'attributes_rejected_geometry': stats.attributes_rejected_geometry,
        'attributes_unknown_parent': stats.attributes_unknown_parent,
        'attributes_out_of_order': stats.attributes_out_of_order,
        'directions_widened': stats.directions_widened,
        'attributes_without_geometry': stats.attributes_without_geometry,
        'attributes_dropped_no_neighbour': stats.attributes_dropped_no_neighbour,

        # Overlay
        'overlays_applied': stats.overlays_applied,
        'splits_performed': stats.splits_performed,
        'split_failures': stats.split_failures,
        'split_retries': stats.split_retries,
        'attributes_abandoned': stats.attributes_abandoned,
        'synthetic_nodes_created': stats.synthetic_nodes_created,

        # Cleaning
        'fragments_aligned': stats.fragments_aligned,
        'attributes_filled': stats.attributes_filled,
        'fragments_merged': stats.fragments_merged,
        'nodes_removed': stats.nodes_removed,

        # Performance metrics
        'processing_time': stats.processing_time,

        # Configuration and output info
        'crs': crs.to_string(),
        'output_dir': str(output_dir),
        'sink_errors': sink_errors,
        'config': {
            'tolerance': config.tolerance,
            'tolerance_max': config.tolerance_max,
            'retry_multiplier': config.retry_multiplier,
            'allow_slack': config.allow_slack,
            'match_tolerance': config.match_tolerance,
            'attribute_kinds': [kind.value for kind in config.attribute_kinds],
            'write_dirty': config.write_dirty,
        },
        'metadata': config.metadata,

        # Pipeline metadata
        'pipeline_version': __version__,
        'timestamp': time.strftime('%Y-%m-%d %H:%M:%S UTC', time.gmtime()),
    }

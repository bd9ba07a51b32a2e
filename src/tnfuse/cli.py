"""Command-line interface for tnfuse."""

import json
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .attributes import KIND_SPECS
from .pipeline import fuse_network
from .types import FuseConfig

app = typer.Typer(
    name="tnfuse",
    help="Transport Network attribute Fusion - fuse attribute sources onto a road network",
    no_args_is_help=True,
)
console = Console()


@app.command()
def fuse(
    edges_path: str = typer.Argument(..., help="Edge table (;-separated CSV or any geopandas-readable file)"),
    output_dir: str = typer.Argument(..., help="Directory for the node and edge tables"),

    # Attribute sources
    attributes: Optional[List[str]] = typer.Option(
        None, "--attribute", "-a", help="Attribute source as KIND=PATH (repeat for multiple sources)"
    ),

    # Tolerances (CRS units)
    tolerance: Optional[float] = typer.Option(None, "--tolerance", help="Nominal overlay tolerance"),
    tolerance_max: Optional[float] = typer.Option(None, "--tolerance-max", help="Ceiling for tolerance retries"),
    crs: Optional[str] = typer.Option(None, "--crs", help="Projected CRS of the input geometries"),

    # Output options
    dirty: Optional[bool] = typer.Option(None, "--dirty/--no-dirty", help="Also write the network before cleaning"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Append diagnostics to this file"),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Show progress bars"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase verbosity (use -v, -vv)"),

    # Configuration file
    config_file: Optional[str] = typer.Option(None, "--config", help="Load configuration from YAML or JSON file"),

    # Report output
    report_path: Optional[str] = typer.Option(None, "--report", help="Save processing report to JSON file"),
) -> None:
    """Fuse attribute sources onto a road network.

    This command applies a fixed pipeline: load edges -> overlay each attribute source -> clean -> export

    Attribute rows are sorted by parent id and start measure before they are fused.

    Examples:

        # One speed limit source
        tnfuse fuse edges.csv out/ --attribute speed_limit=speed.csv

        # Several sources with a config file and report
        tnfuse fuse edges.csv out/ -a speed_limit=speed.csv -a number_of_lanes=lanes.csv --config config.yaml --report report.json
    """
    try:
        # Load configuration from file if provided
        if config_file:
            config = load_config_file(config_file)
            console.print(f"Loaded configuration from {config_file}")
        else:
            config = FuseConfig()

        # Override config with command-line arguments
        if tolerance is not None:
            config.tolerance = tolerance
        if tolerance_max is not None:
            config.tolerance_max = tolerance_max
        if crs is not None:
            config.crs = crs
        if dirty is not None:
            config.write_dirty = dirty
        if log_file is not None:
            config.log_file = log_file
        config.progress_bar = progress
        config.verbose = min(verbose, 2)
        config.__post_init__()

        sources = parse_attribute_options(attributes or [])

        # Display configuration if verbose
        if verbose >= 1:
            display_config(config)

        # Run the pipeline
        console.print("Starting tnfuse pipeline...")
        network, report = fuse_network(edges_path, sources, output_dir, config)

        # Display results
        display_results(report, verbose)

        # Save report if requested
        if report_path:
            save_report(report, report_path)
            console.print(f"Report saved to {report_path}")

        console.print("Pipeline completed successfully!")

    except Exception as e:
        console.print(f"Error: {e}", style="bold red")
        if verbose >= 2:
            console.print_exception()
        sys.exit(1)


@app.command()
def kinds() -> None:
    """List the supported attribute kinds."""
    table = Table(title="Attribute kinds", show_header=True, header_style="bold blue")
    table.add_column("Kind", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Range")
    table.add_column("Directional")

    for kind, spec in KIND_SPECS.items():
        table.add_row(kind.value, spec.value_type.value, spec.describe_range(), "yes" if spec.directional else "no")

    console.print(table)


@app.command()
def config(
    output_path: str = typer.Argument(..., help="Output path for configuration file"),
    format: str = typer.Option("yaml", "--format", help="Output format: yaml or json"),
) -> None:
    """Generate a default configuration file."""
    try:
        config = FuseConfig()
        config_dict = {
            'crs': config.crs,
            'tolerance': config.tolerance,
            'tolerance_max': config.tolerance_max,
            'retry_multiplier': config.retry_multiplier,
            'allow_slack': config.allow_slack,
            'match_tolerance': config.match_tolerance,
            'duplicate_geometry_tolerance': config.duplicate_geometry_tolerance,
            'attribute_kinds': [kind.value for kind in config.attribute_kinds],
            'write_dirty': config.write_dirty,
            'log_file': config.log_file,
            'progress_bar': config.progress_bar,
            'verbose': config.verbose,
        }

        output_file = Path(output_path)

        if format.lower() == 'yaml':
            with open(output_file, 'w') as f:
                yaml.dump(config_dict, f, default_flow_style=False, indent=2, sort_keys=False)
        elif format.lower() == 'json':
            with open(output_file, 'w') as f:
                json.dump(config_dict, f, indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}")

        console.print(f"Default configuration saved to {output_path}")

    except Exception as e:
        console.print(f"Failed to create config file: {e}", style="bold red")
        sys.exit(1)


def parse_attribute_options(options: List[str]) -> List[Tuple[str, str]]:
    """Split ``KIND=PATH`` options into ``(kind, path)`` pairs."""
    sources = []
    for option in options:
        kind, sep, path = option.partition("=")
        if not sep or not kind.strip() or not path.strip():
            raise typer.BadParameter(f"attribute source must be KIND=PATH, got: {option}")
        sources.append((kind.strip(), path.strip()))
    return sources


def load_config_file(config_path: str) -> FuseConfig:
    """Load configuration from YAML or JSON file."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        if path.suffix.lower() in ['.yml', '.yaml']:
            config_dict = yaml.safe_load(f)
        elif path.suffix.lower() == '.json':
            config_dict = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

    return FuseConfig(**(config_dict or {}))


def display_config(config: FuseConfig) -> None:
    """Display current configuration in a formatted table."""
    table = Table(title="Configuration", show_header=True, header_style="bold blue")
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("CRS", config.crs)
    table.add_row("Tolerance", f"{config.tolerance:g}")
    table.add_row("Tolerance ceiling", f"{config.tolerance_max:g}")
    table.add_row("Retry multiplier", f"{config.retry_multiplier:g}")
    table.add_row("Allow slack", str(config.allow_slack))
    table.add_row("Match tolerance", f"{config.match_tolerance:g}")
    table.add_row("Output kinds", ", ".join(kind.value for kind in config.attribute_kinds))
    table.add_row("Write dirty snapshot", str(config.write_dirty))
    table.add_row("Log file", str(config.log_file))

    console.print(table)


def display_results(report: dict, verbose: int) -> None:
    """Display processing results."""
    # Summary panel
    summary_text = (
        f"Input:  {report['input_fragments']} edge fragments on {report['input_links']} links\n"
        f"Fused:  {report['fused_fragments']} fragments, {report['synthetic_nodes_created']} synthetic nodes\n"
        f"Output: {report['output_fragments']} fragments, {report['output_nodes']} nodes\n"
        f"Processing time: {report['processing_time']:.2f}s"
    )

    console.print(Panel(summary_text, title="Processing Summary", expand=False))

    if verbose >= 1:
        # Detailed statistics table
        table = Table(title="Detailed Statistics", show_header=True)
        table.add_column("Operation", style="cyan")
        table.add_column("Count", style="magenta")

        table.add_row("Edge rows", str(report['edge_rows']))
        table.add_row("Edges rejected (validation)", str(report['edges_rejected_validation']))
        table.add_row("Edges rejected (geometry)", str(report['edges_rejected_geometry']))
        table.add_row("Edges rejected (overlap)", str(report['edges_rejected_overlap']))
        table.add_row("Attribute rows", str(report['attribute_rows']))
        table.add_row("Attributes rejected (validation)", str(report['attributes_rejected_validation']))
        table.add_row("Attributes rejected (geometry)", str(report['attributes_rejected_geometry']))
        table.add_row("Attributes for unknown parents", str(report['attributes_unknown_parent']))
        table.add_row("Attribute rows out of order", str(report['attributes_out_of_order']))
        table.add_row("Directions widened", str(report['directions_widened']))
        table.add_row("Splits performed", str(report['splits_performed']))
        table.add_row("Split failures", str(report['split_failures']))
        table.add_row("Attributes abandoned", str(report['attributes_abandoned']))
        table.add_row("Fragments aligned", str(report['fragments_aligned']))
        table.add_row("Fragments merged", str(report['fragments_merged']))
        table.add_row("Nodes removed", str(report['nodes_removed']))

        console.print(table)

    if report.get('sink_errors'):
        console.print("Output errors:", style="yellow")
        for error in report['sink_errors']:
            console.print(f"  - {error}")


def save_report(report: dict, report_path: str) -> None:
    """Save processing report to JSON file."""
    with open(report_path, 'w') as f:
        json.dump(report, f, indent=2, default=str)


if __name__ == "__main__":
    app()

"""Tests for the main pipeline orchestration."""

import pandas as pd
import pytest

from tnfuse import FuseConfig, fuse_network
from tnfuse.attributes import AttributeKind


def _read_output(path):
    return pd.read_csv(path, sep=";", dtype=str, keep_default_na=False)


class TestFuseNetworkPipeline:
    """Integration tests for the complete pipeline."""

    def test_simple_pipeline(self, edges_csv, speed_csv, tmp_path, default_config):
        """Test load, fuse, clean and export with one speed limit source."""
        output_dir = tmp_path / "out"

        network, report = fuse_network(
            str(edges_csv), {"speed_limit": str(speed_csv)}, str(output_dir), default_config
        )

        assert (output_dir / "nodes.csv").exists()
        assert (output_dir / "edges.csv").exists()
        assert not (output_dir / "edges_dirty.csv").exists()

        # Overlay split L1 in three, cleaning merged it back
        assert report["input_links"] == 2
        assert report["input_fragments"] == 2
        assert report["fused_fragments"] == 4
        assert report["fused_nodes"] == 5
        assert report["output_fragments"] == 2
        assert report["output_nodes"] == 3
        assert report["nodes_removed"] == 2
        assert report["attribute_sources"]["speed_limit"] == {"rows": 1, "parents": 1, "groups": 1}
        assert report["sink_errors"] == []
        assert report["crs"] == "EPSG:3006"
        assert "processing_time" in report
        assert "config" in report

        edges = _read_output(output_dir / "edges.csv")
        speeds = dict(zip(edges["parent_id"], edges["speed_limit"]))
        assert speeds == {"L1": "50.0", "L2": ""}

        nodes = _read_output(output_dir / "nodes.csv")
        assert sorted(nodes["id"]) == ["N1", "N2", "N3"]
        assert set(nodes["synthetic"]) == {"f"}
        assert network.fragment_count() == 2

    def test_sources_as_pairs(self, edges_csv, speed_csv, tmp_path, default_config):
        """Test that sources may be given as (kind, path) pairs."""
        _, report = fuse_network(
            str(edges_csv), [(AttributeKind.SPEED_LIMIT, speed_csv)], str(tmp_path / "out"), default_config
        )
        assert report["overlays_applied"] == 1

    def test_no_attribute_sources(self, edges_csv, tmp_path, default_config):
        """Test that the network passes through unchanged without sources."""
        _, report = fuse_network(str(edges_csv), [], str(tmp_path / "out"), default_config)

        assert report["output_fragments"] == 2
        assert report["output_nodes"] == 3

    def test_dirty_snapshot(self, edges_csv, speed_csv, tmp_path):
        """Test that the network before cleaning can be written too."""
        config = FuseConfig(write_dirty=True, progress_bar=False)
        output_dir = tmp_path / "out"

        fuse_network(str(edges_csv), {"speed_limit": str(speed_csv)}, str(output_dir), config)

        dirty_edges = _read_output(output_dir / "edges_dirty.csv")
        dirty_nodes = _read_output(output_dir / "nodes_dirty.csv")
        assert len(dirty_edges) == 4
        assert len(dirty_nodes) == 5
        assert set(dirty_nodes["synthetic"]) == {"t", "f"}
        assert len(_read_output(output_dir / "edges.csv")) == 2

    def test_output_kinds_follow_config(self, edges_csv, speed_csv, tmp_path):
        """Test that only the configured kinds become edge columns, in order."""
        config = FuseConfig(attribute_kinds=["speed_limit", "number_of_lanes"], progress_bar=False)
        output_dir = tmp_path / "out"

        fuse_network(str(edges_csv), {"speed_limit": str(speed_csv)}, str(output_dir), config)

        edges = _read_output(output_dir / "edges.csv")
        assert list(edges.columns)[-2:] == ["speed_limit", "number_of_lanes"]

    def test_log_file_is_appended(self, edges_csv, tmp_path):
        """Test that diagnostics are appended to the configured log file."""
        bad_speed = tmp_path / "bad_speed.csv"
        bad_speed.write_text(
            "parent_id;measure_from;measure_to;geometry;value;value_type;direction\n"
            "L1;0.2;0.6;LINESTRING (2 0, 6 0);-50;real;1\n"
        )
        log_file = tmp_path / "logs" / "fuse.log"
        log_file.parent.mkdir()
        log_file.write_text("previous run\n")
        config = FuseConfig(log_file=str(log_file), progress_bar=False)

        _, report = fuse_network(str(edges_csv), {"speed_limit": str(bad_speed)}, str(tmp_path / "out"), config)

        content = log_file.read_text()
        assert content.startswith("previous run\n")
        assert "Skipping attribute L1;0.2;0.6" in content
        assert report["attributes_rejected_validation"] == 1

    def test_geographic_crs_rejected(self, edges_csv, tmp_path):
        """Test that tolerances need a projected CRS."""
        config = FuseConfig(crs="EPSG:4326", progress_bar=False)

        with pytest.raises(ValueError, match="not projected"):
            fuse_network(str(edges_csv), [], str(tmp_path / "out"), config)

    def test_unknown_kind_rejected(self, edges_csv, speed_csv, tmp_path, default_config):
        """Test that an unknown kind stops the pipeline before any work."""
        with pytest.raises(ValueError, match="Unknown attribute kind"):
            fuse_network(str(edges_csv), {"colour": str(speed_csv)}, str(tmp_path / "out"), default_config)

        assert not (tmp_path / "out").exists()

    def test_missing_edges_file(self, tmp_path, default_config):
        """Test that a missing edge table raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            fuse_network(str(tmp_path / "absent.csv"), [], str(tmp_path / "out"), default_config)

    def test_unwritable_output_is_reported(self, edges_csv, tmp_path, default_config):
        """Test that failing sinks are collected instead of aborting the run."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        network, report = fuse_network(str(edges_csv), [], str(blocker), default_config)

        assert len(report["sink_errors"]) == 2
        assert network.fragment_count() == 2

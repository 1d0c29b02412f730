"""
Integration tests for the arbitrator CLI.

Tests the command-line interface using Typer's CliRunner for:
- Main entry point and version display
- run command validation and error handling
- A full run with in-memory NCBI clients
- init-config template generation
"""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from arbitrator import __version__
from arbitrator.cli.main import app
from arbitrator.core.coordinator import CoordinatorReport
from arbitrator.core.exceptions import RemoteJobFailure, StuckJobError
from arbitrator.core.pipeline import PipelineResult
from arbitrator.models.config import ArbitratorConfig
from arbitrator.models.hits import CallSet

runner = CliRunner()

DOMAIN_HITS = {
    "WP_1.1": [("Specific", "cd02040", 1e-80)],
    "WP_2.1": [("Specific", "cd00001", 1e-80), ("Specific", "cd02040", 1e-40)],
}


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def restore_root_logging():
    """The run command reconfigures root logging; undo it after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def seeds_file(temp_dir: Path) -> Path:
    path = temp_dir / "seeds.txt"
    path.write_text("P1\n\nP1\n")
    return path


@pytest.fixture
def base_args(seeds_file: Path, temp_dir: Path) -> list[str]:
    return [
        "run",
        "--seeds", str(seeds_file),
        "-q", "2",
        "-s", "1",
        "--posdom", "cd02040",
        "--work-dir", str(temp_dir / "work"),
        "--quiet",
    ]


def mocked_pipeline(result: PipelineResult | None = None, error: Exception | None = None) -> MagicMock:
    """Pipeline class stand-in whose context-managed instance returns result."""
    pipeline_cls = MagicMock()
    instance = pipeline_cls.return_value.__enter__.return_value
    if error is not None:
        instance.run.side_effect = error
    else:
        instance.run.return_value = result
    return pipeline_cls


def make_result(failed: dict[str, str] | None = None) -> PipelineResult:
    return PipelineResult(
        coordinator=CoordinatorReport(completed=["P1"], failed=failed or {}),
        call_set=CallSet(positive={"WP_1.1"}, negative={"WP_2.1"}),
        records=[],
        positives=["WP_1.1"],
    )


# =============================================================================
# Main entry point
# =============================================================================


class TestMainApp:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "run" in result.stdout
        assert "init-config" in result.stdout


# =============================================================================
# run command
# =============================================================================


class TestRunValidation:
    """Argument errors exit with status 1 before any search starts."""

    def test_requires_an_output(self, base_args):
        with patch("arbitrator.cli.run.Pipeline") as pipeline_cls:
            result = runner.invoke(app, base_args)
        assert result.exit_code == 1
        assert "--list-output" in result.stdout
        pipeline_cls.assert_not_called()

    def test_failures_output_requires_records_dir(self, base_args, temp_dir):
        args = base_args + ["-o", str(temp_dir / "out.txt"), "--failures-output", str(temp_dir / "f.txt")]
        result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert "--failures-output requires --records-dir" in result.stdout

    def test_invalid_positive_domain(self, base_args, temp_dir):
        args = base_args + ["-o", str(temp_dir / "out.txt")]
        args[args.index("cd02040")] = "pfam00142"
        result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert "pfam00142" in result.stdout

    def test_overlapping_domains(self, base_args, temp_dir):
        args = base_args + ["-o", str(temp_dir / "out.txt"), "--uninfdom", "cd02040"]
        result = runner.invoke(app, args)
        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout

    def test_missing_thresholds(self, seeds_file, temp_dir):
        result = runner.invoke(
            app,
            ["run", "--seeds", str(seeds_file), "--posdom", "cd02040", "-o", str(temp_dir / "o.txt")],
        )
        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout

    def test_empty_seed_file(self, base_args, seeds_file, temp_dir):
        seeds_file.write_text("\n\n")
        result = runner.invoke(app, base_args + ["-o", str(temp_dir / "out.txt")])
        assert result.exit_code == 1
        assert "No seed identifiers" in result.stdout

    def test_missing_seed_file(self, temp_dir):
        result = runner.invoke(
            app,
            ["run", "--seeds", str(temp_dir / "absent.txt"), "-q", "2", "-s", "1", "--posdom", "cd02040"],
        )
        assert result.exit_code != 0


class TestRunWithMockedPipeline:
    """The command wires options into the pipeline and reports outcomes."""

    def test_success(self, base_args, temp_dir):
        output = temp_dir / "out.txt"
        pipeline_cls = mocked_pipeline(make_result())
        with patch("arbitrator.cli.run.Pipeline", pipeline_cls):
            result = runner.invoke(app, base_args + ["-o", str(output), "--batch-size", "50"])

        assert result.exit_code == 0, result.stdout
        config = pipeline_cls.call_args.args[0]
        assert isinstance(config, ArbitratorConfig)
        assert config.batch_size == 50
        assert config.expect == pytest.approx(0.01)
        run_call = pipeline_cls.return_value.__enter__.return_value.run.call_args
        assert run_call.args[0] == ["P1"]
        assert run_call.kwargs["list_output"] == output
        assert callable(run_call.kwargs["on_seed_done"])

    def test_failed_seeds_exit_nonzero(self, base_args, temp_dir):
        pipeline_cls = mocked_pipeline(make_result(failed={"P2": "down"}))
        with patch("arbitrator.cli.run.Pipeline", pipeline_cls):
            result = runner.invoke(app, base_args + ["-o", str(temp_dir / "out.txt")])
        assert result.exit_code == 1
        assert "could not be searched" in result.stdout

    def test_remote_failure_reported(self, base_args, temp_dir):
        error = RemoteJobFailure("CD-Search", "QM3-qcdsearch-X", 4)
        with patch("arbitrator.cli.run.Pipeline", mocked_pipeline(error=error)):
            result = runner.invoke(app, base_args + ["-o", str(temp_dir / "out.txt")])
        assert result.exit_code == 1
        assert "remote_job" in result.stdout
        assert "QM3-qcdsearch-X" in result.stdout
        assert "resume from the checkpoint" not in result.stdout

    def test_stuck_job_suggests_resume(self, base_args, temp_dir):
        error = StuckJobError("CD-Search", "QM3-qcdsearch-X", 180)
        with patch("arbitrator.cli.run.Pipeline", mocked_pipeline(error=error)):
            result = runner.invoke(app, base_args + ["-o", str(temp_dir / "out.txt")])
        assert result.exit_code == 1
        assert "resume from the checkpoint" in result.stdout

    def test_config_file_with_overrides(self, seeds_file, temp_dir):
        config_path = temp_dir / "arbitrator.yaml"
        config_path.write_text(
            "thresholds:\n  quality: 5\n  superiority: 3\ndomains:\n  positive: [cd02040]\n"
        )
        pipeline_cls = mocked_pipeline(make_result())
        with patch("arbitrator.cli.run.Pipeline", pipeline_cls):
            result = runner.invoke(
                app,
                [
                    "run",
                    "--seeds", str(seeds_file),
                    "--config", str(config_path),
                    "-q", "3",
                    "-o", str(temp_dir / "out.txt"),
                    "--quiet",
                ],
            )
        assert result.exit_code == 0, result.stdout
        config = pipeline_cls.call_args.args[0]
        assert config.quality_threshold == 3
        assert config.superiority_threshold == 3


class TestRunEndToEnd:
    """Full run through the CLI with NCBI clients replaced by fakes."""

    def test_run_and_resume(self, base_args, temp_dir, make_blast_document, fake_blast_client, fake_cd_client):
        output = temp_dir / "positives.txt"
        blast = fake_blast_client({"P1": make_blast_document("P1", ["WP_1.1", "WP_2.1"])})
        cd = fake_cd_client(DOMAIN_HITS)

        with patch("arbitrator.core.pipeline.BlastJobClient", return_value=blast), patch(
            "arbitrator.core.pipeline.CDSearchClient", return_value=cd
        ):
            first = runner.invoke(app, base_args + ["-o", str(output), "--report", str(temp_dir / "calls.csv")])
            second = runner.invoke(app, base_args + ["-o", str(output)])

        assert first.exit_code == 0, first.stdout
        assert second.exit_code == 0, second.stdout
        assert output.read_text() == "WP_1.1\n"
        assert (temp_dir / "calls.csv").exists()
        assert (temp_dir / "work" / "blast_hits_P1").exists()
        # Second run found cached results and checkpoints
        assert len(blast.calls) == 1
        assert len(cd.batches) == 1


# =============================================================================
# init-config command
# =============================================================================


class TestInitConfig:
    def test_writes_loadable_template(self, temp_dir):
        output = temp_dir / "arbitrator.yaml"
        result = runner.invoke(app, ["init-config", "-o", str(output), "--posdom", "cd02040,cd02117"])
        assert result.exit_code == 0
        config = ArbitratorConfig.from_yaml(output)
        assert config.positive_domains == {"cd02040", "cd02117"}
        assert config.batch_size == 250

    def test_refuses_to_overwrite(self, temp_dir):
        output = temp_dir / "arbitrator.yaml"
        output.write_text("existing")
        result = runner.invoke(app, ["init-config", "-o", str(output)])
        assert result.exit_code == 1
        assert output.read_text() == "existing"

    def test_force_overwrites(self, temp_dir):
        output = temp_dir / "arbitrator.yaml"
        output.write_text("existing")
        result = runner.invoke(app, ["init-config", "-o", str(output), "--force"])
        assert result.exit_code == 0
        assert "thresholds" in output.read_text()

    def test_invalid_domain(self, temp_dir):
        result = runner.invoke(app, ["init-config", "-o", str(temp_dir / "a.yaml"), "--posdom", "pfam1"])
        assert result.exit_code == 1

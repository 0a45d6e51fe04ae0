"""Tests for the click CLI (orchestrator mocked)."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from toolshots.cli import cli
from toolshots.models.capture import (
    BatchFailure,
    BatchResult,
    DuplicateMatch,
    Region,
    TargetResult,
    TargetState,
)
from toolshots.models.config import PipelineConfig


@pytest.fixture
def runner():
    return CliRunner()


def _batch():
    ok = TargetResult(tool_id="a", url="https://a.example.com", success=True,
                      urls=["u1", "u2"], status=TargetState.COMPLETED)
    bad = TargetResult(tool_id="b", url="https://b.example.com", status=TargetState.FAILED,
                       error="Capture failed: dns")
    return BatchResult(
        started_at="2026-01-01T00:00:00Z", total=2, succeeded=1, failed=1, screenshots=2,
        results=[ok, bad],
        failures=[BatchFailure(tool_id="b", target="https://b.example.com", error="Capture failed: dns")],
    )


class TestRunCommand:
    def test_run_with_limit(self, runner):
        with runner.isolated_filesystem(), patch("toolshots.cli.Orchestrator") as MockOrch:
            MockOrch.return_value.run_batch.return_value = (_batch(), Path("screenshot-reports/batch_x.json"))
            result = runner.invoke(cli, ["run", "--limit", "3"])

        assert result.exit_code == 0, result.output
        MockOrch.return_value.run_batch.assert_called_once_with(3)
        assert "Batch Complete" in result.output
        assert "https://b.example.com: Capture failed: dns" in result.output

    def test_limit_from_environment(self, runner):
        with runner.isolated_filesystem(), patch("toolshots.cli.Orchestrator") as MockOrch:
            MockOrch.return_value.run_batch.return_value = (_batch(), Path("r.json"))
            result = runner.invoke(cli, ["run"], env={"SCREENSHOT_LIMIT": "2"})

        assert result.exit_code == 0, result.output
        MockOrch.return_value.run_batch.assert_called_once_with(2)

    def test_missing_credentials(self, runner):
        with runner.isolated_filesystem(), patch(
            "toolshots.cli.Orchestrator",
            side_effect=EnvironmentError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set"),
        ):
            result = runner.invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "SUPABASE_URL" in result.output

    def test_config_file_is_used(self, runner):
        with runner.isolated_filesystem(), patch("toolshots.cli.Orchestrator") as MockOrch:
            Path("custom.json").write_text(json.dumps({"batch": {"batch_size": 2}}))
            MockOrch.return_value.run_batch.return_value = (_batch(), Path("r.json"))
            result = runner.invoke(cli, ["run", "--config", "custom.json"])

        assert result.exit_code == 0, result.output
        config = MockOrch.call_args.args[0]
        assert config.batch.batch_size == 2

    def test_invalid_config(self, runner):
        with runner.isolated_filesystem(), patch("toolshots.cli.Orchestrator"):
            Path("bad.json").write_text(json.dumps({"batch": {"batch_size": 0}}))
            result = runner.invoke(cli, ["run", "--config", "bad.json"])

        assert result.exit_code == 1
        assert "Invalid config" in result.output


class TestSingleCommand:
    def test_single_success(self, runner):
        target_result = TargetResult(
            tool_id="tool-1", url="https://example.com", success=True, status=TargetState.COMPLETED,
            source="browser", urls=["https://cdn/hero.webp", "https://cdn/fullpage.webp"],
            regions=[Region.HERO, Region.FULLPAGE],
            duplicates=[DuplicateMatch(region=Region.FEATURES, duplicate_of=Region.HERO, score=1.0)],
        )
        with runner.isolated_filesystem(), patch("toolshots.cli.Orchestrator") as MockOrch:
            MockOrch.return_value.run_single.return_value = target_result
            result = runner.invoke(cli, ["single", "--tool-id", "tool-1", "--url", "https://example.com"])

        assert result.exit_code == 0, result.output
        MockOrch.return_value.run_single.assert_called_once_with("tool-1", "https://example.com")
        assert "uploaded" in result.output
        assert "duplicate" in result.output
        assert "missing" in result.output

    def test_single_failure_exits_nonzero(self, runner):
        failed = TargetResult(tool_id="t", url="https://x.example.com").fail("All fallback renders failed")
        with runner.isolated_filesystem(), patch("toolshots.cli.Orchestrator") as MockOrch:
            MockOrch.return_value.run_single.return_value = failed
            result = runner.invoke(cli, ["single", "--tool-id", "t"])

        assert result.exit_code == 1
        assert "All fallback renders failed" in result.output

    def test_single_unknown_tool(self, runner):
        with runner.isolated_filesystem(), patch("toolshots.cli.Orchestrator") as MockOrch:
            MockOrch.return_value.run_single.side_effect = LookupError("Tool not found: zzz")
            result = runner.invoke(cli, ["single", "--tool-id", "zzz"])

        assert result.exit_code == 1
        assert "Tool not found: zzz" in result.output


class TestInitCommand:
    def test_init_writes_default_config(self, runner):
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0, result.output
            config = PipelineConfig.load("screenshot-config.json")

        assert config.storage.bucket == "tool-screenshots"

    def test_init_declines_overwrite(self, runner):
        with runner.isolated_filesystem():
            Path("screenshot-config.json").write_text("{}")
            result = runner.invoke(cli, ["init"], input="n\n")
            assert Path("screenshot-config.json").read_text() == "{}"

        assert result.exit_code == 0

"""
CLI Tests
=========

Argument parsing and the replay command.
"""

import argparse
import asyncio
import json
import logging
import os
import signal
from datetime import timedelta

import pytest

from conftest import NOW, make_block
from hearing_dose.config import Settings
from hearing_dose.main import build_parser, main, run


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("dose:\n  timezone: UTC\nstorage:\n  backend: memory\n")
    return str(path)


@pytest.fixture
def sample_file(tmp_path):
    samples = make_block("cli", NOW - timedelta(minutes=130), 130 * 60, 88.0)
    path = tmp_path / "samples.json"
    path.write_text(json.dumps({"samples": [s.to_dict() for s in samples]}))
    return str(path)


class TestParser:
    """Tests for argument parsing."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_model_choices(self):
        args = build_parser().parse_args(["--model", "osha", "replay", "x.json"])
        assert args.model == "osha"
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--model", "loudness", "replay", "x.json"])


class TestReplay:
    """Tests for the replay command."""

    def test_replay_prints_summary(self, config_file, sample_file, capsys):
        code = main([
            "--config", config_file,
            "replay", sample_file,
            "--now", NOW.isoformat(),
            "--connected",
        ])

        assert code == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["model"] == "niosh"
        assert summary["ingest"]["inserted_count"] == 130
        assert summary["today"]["dose_percent"] == pytest.approx(54.1667, rel=1e-3)
        assert summary["insight"]["kind"] == "safe"

        types = [e["type"] for e in summary["events"]]
        assert "ThresholdEvent" in types
        assert "LiveSessionSnapshot" in types
        assert summary["weekly_digest"] is None

    def test_model_override(self, config_file, sample_file, capsys):
        main(["--config", config_file, "--model", "osha", "replay", sample_file, "--now", NOW.isoformat()])

        summary = json.loads(capsys.readouterr().out)
        assert summary["model"] == "osha"
        assert summary["today"]["dose_percent"] < 54.0

    def test_strict_config_error(self, tmp_path, sample_file, capsys):
        bad = tmp_path / "bad.yaml"
        bad.write_text("session:\n  daily_limit_percent: 0\n")

        code = main(["--config", str(bad), "--strict-config", "replay", sample_file])

        assert code == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_missing_file_fails(self, config_file, tmp_path):
        code = main(["--config", config_file, "replay", str(tmp_path / "none.json")])
        assert code == 1


class TestRunLoop:
    """Tests for the polling loop."""

    def test_unreadable_source_keeps_polling(self, tmp_path, caplog):
        """A malformed source file is logged each poll until the loop is stopped."""
        source = tmp_path / "partial.json"
        source.write_text('{"samples": [')
        args = argparse.Namespace(source=str(source), poll=0.01)
        settings = Settings.model_validate({"dose": {"timezone": "UTC"}})

        async def scenario():
            task = asyncio.ensure_future(run(args, settings))
            await asyncio.sleep(0.1)
            os.kill(os.getpid(), signal.SIGINT)
            return await asyncio.wait_for(task, timeout=5)

        with caplog.at_level(logging.ERROR, logger="hearing_dose"):
            code = asyncio.run(scenario())

        assert code == 0
        retries = [r for r in caplog.records if "retrying next poll" in r.getMessage()]
        assert len(retries) >= 2

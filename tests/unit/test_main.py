# tests/unit/test_main.py — v3
"""Tests for main.py — CLI entry point."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from genstage.adaptors.models import TextResult
from genstage.config.settings import ConfigurationError, Settings
from genstage.main import _build_parser, main

THEMES_PROMPT = {
    "id": "themes_text_default",
    "capability": "text",
    "name": "Theme ideation",
    "is_default": True,
    "user_prompt": "Suggest themes for {{team}}.",
}


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------

class TestBuildParser:
    def test_version_flag(self):
        parser = _build_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_run_subcommand(self):
        args = _build_parser().parse_args(["run", "batch.json"])
        assert args.command == "run"
        assert args.batch_file == Path("batch.json")
        assert args.verbose is False

    def test_run_has_no_pool_size_flag(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["run", "batch.json", "--concurrency", "5"])

    def test_resolve_subcommand(self):
        args = _build_parser().parse_args(["resolve", "stage_2_themes", "image", "-p", "p1"])
        assert args.stage == "stage_2_themes"
        assert args.capability == "image"
        assert args.project == "p1"

    def test_resolve_rejects_unknown_capability(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["resolve", "stage_2_themes", "audio"])

    def test_versions_subcommand(self):
        args = _build_parser().parse_args(["versions", "stage_2_themes", "themes_text_default"])
        assert args.command == "versions"
        assert args.prompt_id == "themes_text_default"

    def test_seed_subcommand(self):
        args = _build_parser().parse_args(["seed", "prompts.json"])
        assert args.prompts_file == Path("prompts.json")


# ---------------------------------------------------------------------------
# Command tests (JSON store under tmp_path, fake adaptors)
# ---------------------------------------------------------------------------

@pytest.fixture
def cli_settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        store_backend="json",
        store_root=tmp_path / "store",
        blob_root=tmp_path / "blobs",
        gemini_api_key="k",
    )


@pytest.fixture
def cli(cli_settings, adaptor_factory):
    """Patch settings loading, logging and the adaptor registry for main()."""
    with patch("genstage.config.settings.load_settings", return_value=cli_settings), \
         patch("genstage.main._setup_logging"), \
         patch("genstage.adaptors.resolver.create_adaptor", adaptor_factory):
        yield adaptor_factory


@pytest.fixture
def seed_file(tmp_path: Path) -> Path:
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"stage_2_themes": [THEMES_PROMPT]}), encoding="utf-8")
    return path


class TestMain:
    def test_no_command(self, capsys):
        assert main([]) == 1

    def test_configuration_error(self, capsys):
        with patch(
            "genstage.config.settings.load_settings",
            side_effect=ConfigurationError("STORE_REDIS_URL is required"),
        ):
            assert main(["seed", "x.json"]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_seed_then_reseed(self, cli, seed_file, capsys):
        assert main(["seed", str(seed_file)]) == 0
        assert "stage_2_themes: 1 added" in capsys.readouterr().out
        assert main(["seed", str(seed_file)]) == 0
        assert "stage_2_themes: 0 added" in capsys.readouterr().out

    def test_seed_missing_file(self, cli, tmp_path):
        assert main(["seed", str(tmp_path / "nope.json")]) == 1

    def test_seed_rejects_list(self, cli, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]", encoding="utf-8")
        assert main(["seed", str(path)]) == 1

    def test_resolve(self, cli, seed_file, capsys):
        main(["seed", str(seed_file)])
        capsys.readouterr()
        assert main(["resolve", "stage_2_themes", "text"]) == 0
        out = capsys.readouterr().out
        assert "themes_text_default (stage_default)" in out
        assert "gemini:gemini-2.0-flash (stage-default)" in out

    def test_resolve_not_found(self, cli):
        assert main(["resolve", "stage_2_themes", "video"]) == 1

    def test_versions(self, cli, seed_file, capsys):
        main(["seed", str(seed_file)])
        capsys.readouterr()
        assert main(["versions", "stage_2_themes", "themes_text_default"]) == 0
        assert "v1" in capsys.readouterr().out

    def test_versions_unknown_prompt(self, cli):
        assert main(["versions", "stage_2_themes", "missing"]) == 1

    def test_run_streams_json_lines(self, cli, seed_file, tmp_path, capsys):
        cli.behaviour["text"] = lambda p, o: TextResult(text='{"themes": ["Derby"]}')
        main(["seed", str(seed_file)])
        capsys.readouterr()

        batch = tmp_path / "batch.json"
        batch.write_text(json.dumps({
            "project_id": "p1", "product": "gamelab", "task": "themes",
            "items": [{"item_id": "hawks", "input": {"team": "Hawks"}}],
        }), encoding="utf-8")

        assert main(["run", str(batch)]) == 0
        captured = capsys.readouterr()
        events = [json.loads(line)["event"] for line in captured.out.splitlines() if line]
        assert events[0] == "start"
        assert events[-1] == "complete"
        assert "itemResult" in events
        assert "1/1 succeeded" in captured.err

    def test_run_rejects_empty_batch(self, cli, tmp_path):
        batch = tmp_path / "empty.json"
        batch.write_text(json.dumps({
            "project_id": "p1", "product": "gamelab", "task": "themes", "items": [],
        }), encoding="utf-8")
        assert main(["run", str(batch)]) == 1

    def test_run_missing_file(self, cli, tmp_path):
        assert main(["run", str(tmp_path / "missing.json")]) == 1

    def test_run_rejects_malformed_batch(self, cli, tmp_path, capsys):
        batch = tmp_path / "malformed.json"
        batch.write_text(json.dumps({
            "product": "gamelab", "task": "themes", "items": "hawks",
        }), encoding="utf-8")
        assert main(["run", str(batch)]) == 1
        assert capsys.readouterr().out == ""

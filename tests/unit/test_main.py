# tests/unit/test_main.py — v1
"""Tests for main.py — CLI parsing and commands (mock provider)."""

from __future__ import annotations

import json

import pytest

from stratrun.main import _build_parser, main


def _write_definition(path, *, chain: bool = True) -> None:
    steps = [{"name": "Layout", "prompt": "base"}]
    if chain:
        steps.append({"name": "Final", "prompt": "base", "mood_board_from_step": 1})
    path.write_text(json.dumps({
        "prompts": [{"name": "base", "system_prompt": "sys", "user_prompt": "draw"}],
        "presets": [
            {"name": "a", "images": {"dollhouse_view": "https://p/a"}},
            {"name": "b", "images": {"dollhouse_view": "https://p/b"}},
        ],
        "strategy": {"name": "Demo", "steps": steps},
    }))


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("IMAGE_PROVIDER", "mock")
    monkeypatch.setenv("RECORD_STORE_BACKEND", "memory")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")


class TestParser:
    def test_run_args(self):
        args = _build_parser().parse_args(["run", "def.json", "-p", "a", "--preset", "b", "--retry-failed"])
        assert args.command == "run"
        assert args.preset == ["a", "b"]
        assert args.retry_failed is True

    def test_plan_args(self):
        args = _build_parser().parse_args(["plan", "def.json", "--export", "g.json"])
        assert str(args.export) == "g.json"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "stratrun" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert main([]) == 1


class TestRunCommand:
    def test_run_succeeds(self, tmp_path, capsys):
        definition = tmp_path / "def.json"
        _write_definition(definition)
        assert main(["run", str(definition)]) == 0
        out = capsys.readouterr().out
        assert "completed" in out
        assert "Layout" in out and "Final" in out

    def test_run_per_preset(self, tmp_path, capsys):
        definition = tmp_path / "def.json"
        _write_definition(definition, chain=False)
        assert main(["run", str(definition), "-p", "a", "-p", "b"]) == 0
        assert capsys.readouterr().out.count("\nRun ") == 2

    def test_unknown_preset(self, tmp_path):
        definition = tmp_path / "def.json"
        _write_definition(definition)
        assert main(["run", str(definition), "-p", "zzz"]) == 1

    def test_missing_file(self, tmp_path):
        assert main(["run", str(tmp_path / "nope.json")]) == 1

    def test_no_output_images_still_completes(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MOCK_EMIT_OUTPUTS", "false")
        definition = tmp_path / "def.json"
        _write_definition(definition)
        assert main(["run", str(definition)]) == 0

    def test_failed_run_exit_code(self, tmp_path, monkeypatch, capsys):
        async def failing(self, request):
            raise RuntimeError("provider down")

        monkeypatch.setattr("stratrun.providers.mock_provider.MockImageProvider.generate", failing)
        definition = tmp_path / "def.json"
        _write_definition(definition)
        assert main(["run", str(definition), "--retry-failed"]) == 1
        out = capsys.readouterr().out
        assert "provider down" in out
        assert "Skipped: dependency step 1 failed" in out

    def test_invalid_definition(self, tmp_path):
        definition = tmp_path / "def.json"
        definition.write_text(json.dumps({"strategy": {"name": "x", "steps": [{"prompt": "missing"}]}}))
        assert main(["run", str(definition)]) == 1


class TestPlanCommand:
    def test_prints_levels_and_exports(self, tmp_path, capsys):
        definition = tmp_path / "def.json"
        _write_definition(definition)
        export = tmp_path / "out" / "flow.json"
        assert main(["plan", str(definition), "--export", str(export)]) == 0
        out = capsys.readouterr().out
        assert "Level 1:" in out and "Level 2:" in out
        assert "mood_board_from_step=1" in out
        assert json.loads(export.read_text())["links"][0]["slots"] == ["mood_board"]


class TestShowCommand:
    def test_requires_sqlite(self):
        assert main(["show", "abc"]) == 1

    def test_show_persisted_run(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("RECORD_STORE_BACKEND", "sqlite")
        monkeypatch.setenv("RECORD_STORE_PATH", str(tmp_path / "records.db"))
        definition = tmp_path / "def.json"
        _write_definition(definition)
        assert main(["run", str(definition)]) == 0
        run_id = capsys.readouterr().out.split("\nRun ", 1)[1].split(":", 1)[0]

        assert main(["show", run_id]) == 0
        assert f"Run {run_id}: completed" in capsys.readouterr().out

    def test_show_unknown_run(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RECORD_STORE_BACKEND", "sqlite")
        monkeypatch.setenv("RECORD_STORE_PATH", str(tmp_path / "records.db"))
        assert main(["show", "missing"]) == 1

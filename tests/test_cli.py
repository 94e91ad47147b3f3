from __future__ import annotations

import json
from pathlib import Path

import pytest

from cinematifier.cli import build_parser, main, resolve_config

PROSE = (
    'Thunder roared over the harbor. "Run!" screamed Elena. The door creaked open '
    "and the wind tore through the empty warehouse as the two of them fled into the dark."
)


@pytest.fixture
def novel(tmp_path: Path) -> Path:
    path = tmp_path / "harbor.txt"
    path.write_text(PROSE, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for name in ("CINEMATIFIER_PROVIDER", "OPENAI_API_KEY", "GEMINI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_offline_run_writes_json(novel: Path, tmp_path: Path):
    output = tmp_path / "out" / "harbor.json"
    assert main([str(novel), "--offline", "--output", str(output)]) == 0

    payload = json.loads(output.read_text(encoding="utf-8"))
    types = [block["type"] for block in payload["blocks"]]
    assert "dialogue" in types
    assert "sfx" in types
    assert payload["metadata"]["fallbackChunks"] == 0
    assert payload["metadata"]["characters"]["ELENA"]["dialogueCount"] == 1


def test_chapters_mode_prints_book(novel: Path, capsys):
    assert main([str(novel), "--chapters", "--log-level", "ERROR"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["book"]["title"] == "harbor"
    assert len(payload["chapters"]) == 1


def test_missing_api_key_exits_with_error(novel: Path, capsys):
    assert main([str(novel), "--provider", "openai"]) == 1
    assert "OPENAI_API_KEY" in capsys.readouterr().err


def test_missing_input_exits_with_error(tmp_path: Path, capsys):
    assert main([str(tmp_path / "nope.txt"), "--offline"]) == 1
    assert "file not found" in capsys.readouterr().err


def test_flags_override_config_file(tmp_path: Path):
    config_path = tmp_path / "pipeline.json"
    config_path.write_text(json.dumps({"provider": "gemini", "useStreaming": True}))
    args = build_parser().parse_args(["book.txt", "--config", str(config_path), "--no-stream", "--offline"])
    config = resolve_config(args)
    assert config.provider == "none"
    assert config.use_streaming is False

"""Tests for the command line entry point."""

import pytest

from ai_json_client.main import main


def test_parse_command_prints_recovered_json(tmp_path, capsys) -> None:
    raw = tmp_path / "response.txt"
    raw.write_text('Here you go:\n```json\n{"score": 8, "tags": ["clear",],}\n```', encoding="utf-8")

    assert main(["parse", str(raw)]) == 0

    out = capsys.readouterr().out
    assert '"score": 8' in out
    assert '"clear"' in out


def test_parse_command_reports_failure(tmp_path, capsys) -> None:
    raw = tmp_path / "response.txt"
    raw.write_text("I cannot produce that", encoding="utf-8")

    assert main(["parse", str(raw)]) == 1

    out = capsys.readouterr().out
    assert "MODEL_JSON_PARSE_FAILED" in out
    assert "I cannot produce that" in out


def test_check_config_redacts_keys(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-secret-value-123")

    assert main(["check-config"]) == 0

    out = capsys.readouterr().out
    assert "sk-***123" in out
    assert "sk-test-secret-value-123" not in out
    assert "GEMINI_API_KEY is missing" in out


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 0
    assert "parse" in capsys.readouterr().out

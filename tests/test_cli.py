"""Tests for the reviewloop command line entry point."""
from __future__ import annotations

from pathlib import Path

import pytest

from pkg.reviewloop import cli
from pkg.reviewloop.errors import NoValidOutputError
from pkg.reviewloop.models import ReviewPayload

DIFF_URL = "https://github.com/acme/widgets/pull/7.diff"


@pytest.fixture
def env(tmp_path: Path) -> dict[str, str]:
    return {
        "GIT_DIFF_URL": DIFF_URL,
        "AGENT_NAME": "gemini-cli",
        "GEMINI_API_KEY": "g-key",
        "REVIEW_OUTPUT_DIR": str(tmp_path),
    }


def test_success_returns_zero(monkeypatch: pytest.MonkeyPatch, env: dict[str, str], tmp_path: Path) -> None:
    seen = {}

    def fake_run_review(config, *, cancel):
        seen["config"] = config
        seen["cancel"] = cancel
        return ReviewPayload(body="ok")

    monkeypatch.setattr(cli, "run_review", fake_run_review)
    out_dir = tmp_path / "artifacts"
    assert cli.main(["--output-dir", str(out_dir)], env=env) == 0
    assert seen["config"].output_dir == out_dir
    assert seen["config"].reviewer == "gemini-cli"
    assert not seen["cancel"].is_set()


def test_unknown_backend_is_a_config_error(env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
    env["AGENT_NAME"] = "unknown-backend"
    assert cli.main([], env=env) == 2
    assert "::error::review loop config error: unknown provider: unknown-backend" in capsys.readouterr().err


def test_disallowed_url_is_a_config_error(env: dict[str, str], tmp_path: Path, capsys) -> None:
    env["GIT_DIFF_URL"] = "ftp://example.com/diff"
    assert cli.main([], env=env) == 2
    assert "must start with one of: https://github.com/" in capsys.readouterr().err
    assert list(tmp_path.iterdir()) == []


def test_review_failure_returns_one(monkeypatch: pytest.MonkeyPatch, env: dict[str, str], capsys) -> None:
    def fake_run_review(config, *, cancel):
        raise NoValidOutputError("reviewer failed to produce any valid output after 10 attempts")

    monkeypatch.setattr(cli, "run_review", fake_run_review)
    assert cli.main([], env=env) == 1
    assert "::error::failed reviewing: reviewer failed" in capsys.readouterr().err


def test_config_file_flag(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_file = tmp_path / "review.yml"
    config_file.write_text(f"reviewer: claude\ndiffUrl: {DIFF_URL}\nmaxAttempts: 2\n", encoding="utf-8")
    seen = {}

    def fake_run_review(config, *, cancel):
        seen["config"] = config

    monkeypatch.setattr(cli, "run_review", fake_run_review)
    assert cli.main(["--config", str(config_file)], env={"ANTHROPIC_API_KEY": "k"}) == 0
    assert seen["config"].reviewer == "claude"
    assert seen["config"].limits.max_attempts == 2


def test_unreadable_template_returns_one(monkeypatch: pytest.MonkeyPatch, env: dict[str, str], capsys) -> None:
    def fake_run_review(config, *, cancel):
        raise FileNotFoundError(2, "No such file or directory", "missing.md")

    monkeypatch.setattr(cli, "run_review", fake_run_review)
    assert cli.main([], env=env) == 1
    assert "missing.md" in capsys.readouterr().err

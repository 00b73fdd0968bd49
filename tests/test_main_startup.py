"""Test that the command line entry point starts and produces usable output."""

import json
import subprocess
import sys
from pathlib import Path

import pytest

from dyor_research import main as cli

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    # Keep structlog's global configuration untouched between tests
    monkeypatch.setattr(cli, "_init_logging", lambda: None)


def write_findings(tmp_path, payload):
    path = tmp_path / "findings.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_module_help_does_not_crash():
    """Test that python -m dyor_research.main --help exits cleanly."""
    result = subprocess.run(
        [sys.executable, "-m", "dyor_research.main", "--help"],
        capture_output=True,
        text=True,
        timeout=30,
        cwd=REPO_ROOT,
    )

    assert result.returncode == 0, f"Main module crashed: {result.stderr}"
    assert "classify" in result.stdout
    assert "score" in result.stdout


def test_classify_known_asset(monkeypatch, capsys):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    assert cli.main(["classify", "bitcoin", "--symbol", "BTC"]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["approach"] == "direct_ai"
    assert output["complexity"] == "simple"
    assert output["source"] == "static"


def test_score_passing_findings(tmp_path, capsys):
    path = write_findings(tmp_path, {
        "whitepaper": {"found": True, "data": {"comprehensive": True, "tokenomics": "fixed"},
                       "quality": "high", "data_points": 22},
        "onchain_data": {"found": True, "data": {"contracts_verified": True, "token_deployed": True},
                         "quality": "high", "data_points": 20},
        "team_info": {"found": True, "data": {"team_members": ["alice"], "has_experience": True},
                      "quality": "high", "data_points": 20},
        "community_health": {"found": True, "data": {"discord_members": 50000, "engagement_rate": 0.05},
                             "quality": "high", "data_points": 12},
        "financial_data": {"found": True, "data": {"market_cap": 1000000, "tokenomics": "documented"},
                           "quality": "high", "data_points": 12},
    })

    assert cli.main(["score", str(path), "--project-type", "web3_game"]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["passed"] is True
    assert output["score"]["grade"] == "B"


def test_score_failing_findings_exit_code(tmp_path, capsys):
    path = write_findings(tmp_path, {"whitepaper": {"summary": "A short note about the game."}})

    assert cli.main(["score", str(path)]) == 2

    output = json.loads(capsys.readouterr().out)
    assert output["passed"] is False
    assert "minimum_score" in output["failed_gates"]


def test_load_findings_rejects_non_object(tmp_path):
    path = tmp_path / "findings.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        cli.load_findings(path)

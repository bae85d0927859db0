from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import subscription_detection.external as external_mod
from subscription_detection.cli import app, cmd_detect_subscriptions
from tests.helpers.db import bootstrap_sqlite_db, subscription_rows, transaction_count
from tests.helpers.openai_stub import AsyncOpenAIStub

CSV_PATH = Path(__file__).resolve().parents[1] / "data/transactions_jan_apr_2024.csv"
AMEX_PATH = Path(__file__).resolve().parents[1] / "data/amex_jan_mar_2024_subset.csv"

EXPECTED_TSV = [
    "SPOTIFY USA\tmonthly\t9.99\t1.000\t2024-05-02",
    "NETFLIXCOM\tmonthly\t15.99\t0.991\t2024-04-06",
]


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> CliRunner:
    # Keep stdout free of log lines and make sure no developer .env is picked up.
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SUBSCRIPTION_DETECTION_LOG_LEVEL", "ERROR")
    return CliRunner()


def test_e2e_detect_subscriptions_tsv(runner: CliRunner):
    result = runner.invoke(app, ["detect-subscriptions", "--csv-path", str(CSV_PATH)])

    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines() == EXPECTED_TSV


def test_e2e_detect_subscriptions_json(runner: CliRunner):
    result = runner.invoke(
        app, ["detect-subscriptions", "--csv-path", str(CSV_PATH), "--output", "json"]
    )

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert [d["merchant"] for d in data] == ["SPOTIFY USA", "NETFLIXCOM"]
    assert data[0]["transaction_ids"] == ["t02", "t04", "t07", "t11"]
    assert data[1] == {
        "merchant": "NETFLIXCOM",
        "amount": "15.99",
        "frequency": "monthly",
        "confidence": pytest.approx(0.9906, abs=1e-4),
        "next_billing_date": "2024-04-06",
        "transaction_ids": ["t01", "t05", "t08"],
    }


def test_e2e_threshold_and_aliases_from_env(runner: CliRunner, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SD_MERCHANT_ALIASES", '{"NETFLIXCOM": "Netflix"}')

    result = runner.invoke(
        app, ["detect-subscriptions", "--csv-path", str(CSV_PATH), "--threshold", "0.995"]
    )

    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines() == [EXPECTED_TSV[0]]

    result = runner.invoke(app, ["detect-subscriptions", "--csv-path", str(CSV_PATH)])
    assert result.stdout.splitlines()[1].startswith("NETFLIX\tmonthly\t15.99")


def test_e2e_use_llm_falls_back_when_model_fails(
    runner: CliRunner, monkeypatch: pytest.MonkeyPatch
):
    def _boom(payload):
        raise RuntimeError("503 from upstream")

    stub = AsyncOpenAIStub(_boom)
    monkeypatch.setattr(external_mod, "AsyncOpenAI", stub.factory)

    result = runner.invoke(
        app, ["detect-subscriptions", "--csv-path", str(CSV_PATH), "--use-llm"]
    )

    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines() == EXPECTED_TSV
    assert len(stub.calls) == 1


def test_e2e_amex_export(runner: CliRunner):
    result = runner.invoke(app, ["detect-subscriptions", "--csv-path", str(AMEX_PATH)])

    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines() == [
        "ADOBE CREATIVE CLOUD\tmonthly\t54.99\t1.000\t2024-04-15"
    ]


def test_e2e_persist_then_refresh(runner: CliRunner, tmp_path: Path):
    db_url = bootstrap_sqlite_db(tmp_path / "sd-e2e.db")

    result = runner.invoke(
        app,
        [
            "detect-subscriptions",
            "--csv-path",
            str(CSV_PATH),
            "--persist",
            "--user-id",
            "u1",
            "--database-url",
            db_url,
        ],
    )
    assert result.exit_code == 0, result.output
    assert transaction_count(db_url, "u1") == 10
    assert [r.merchant for r in subscription_rows(db_url, "u1")] == ["NETFLIXCOM", "SPOTIFY USA"]

    # Re-ingesting the same file is idempotent (rows carry ids).
    result = runner.invoke(
        app,
        [
            "detect-subscriptions",
            "--csv-path",
            str(CSV_PATH),
            "--persist",
            "--user-id",
            "u1",
            "--database-url",
            db_url,
        ],
    )
    assert result.exit_code == 0, result.output
    assert transaction_count(db_url, "u1") == 10
    assert len(subscription_rows(db_url, "u1")) == 2

    result = runner.invoke(
        app,
        ["refresh-subscriptions", "--user-id", "u1", "--database-url", db_url, "--output", "json"],
    )
    assert result.exit_code == 0, result.output
    assert [d["merchant"] for d in json.loads(result.stdout)] == ["SPOTIFY USA", "NETFLIXCOM"]


def test_e2e_missing_file_exits_1(runner: CliRunner, tmp_path: Path):
    missing = tmp_path / "missing.csv"

    result = runner.invoke(app, ["detect-subscriptions", "--csv-path", str(missing)])

    assert result.exit_code == 1
    assert f"Error: File not found: {missing}" in result.output


def test_e2e_unrecognized_csv_exits_1(runner: CliRunner, tmp_path: Path):
    bad = tmp_path / "bad.csv"
    bad.write_text("when,who\n2024-01-01,x\n", encoding="utf-8")

    result = runner.invoke(app, ["detect-subscriptions", "--csv-path", str(bad)])

    assert result.exit_code == 1
    assert "Error: Failed to parse CSV" in result.output


@pytest.mark.parametrize(
    ("args", "message"),
    [
        (["--persist"], "Error: --user-id is required with --persist."),
        (["--threshold", "1.5"], "Error: invalid detection settings"),
        (["--output", "xml"], "Error: unknown output format: 'xml'"),
    ],
)
def test_e2e_invalid_options_exit_1(runner: CliRunner, args: list[str], message: str):
    result = runner.invoke(app, ["detect-subscriptions", "--csv-path", str(CSV_PATH), *args])

    assert result.exit_code == 1
    assert message in result.output


@pytest.mark.parametrize("user_id", [None, ""])
def test_persist_without_user_id_never_opens_a_session(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], user_id: str | None
):
    import db.client

    def _no_session(**_kwargs):
        raise AssertionError("session opened without a user id")

    monkeypatch.setattr(db.client, "session_scope", _no_session)

    rc = cmd_detect_subscriptions(str(CSV_PATH), persist=True, user_id=user_id)

    assert rc == 1
    assert "Error: --user-id is required with --persist." in capsys.readouterr().err

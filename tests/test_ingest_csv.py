from __future__ import annotations

import csv
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from subscription_detection.ingest import load_transactions_from_csv, parse_amount
from subscription_detection.ingest.utils import row_is_blank

DATA_DIR = Path(__file__).resolve().parent / "data"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("9.99", Decimal("9.99")),
        ("-15.99", Decimal("-15.99")),
        ("+5", Decimal("5")),
        ("$9.99", Decimal("9.99")),
        ("-$1,234.56", Decimal("-1234.56")),
        ("$-12.00", Decimal("-12.00")),
        ("(12.00)", Decimal("-12.00")),
        ("($1,000.00)", Decimal("-1000.00")),
        ("-(3.00)", Decimal("-3.00")),
        ("  42  ", Decimal("42")),
    ],
)
def test_parse_amount(raw: str, expected: Decimal):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "n/a", "$", "NaN", "Infinity", "1.2.3"])
def test_parse_amount_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_generic_csv_is_read_in_file_order_skipping_bad_rows(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.WARNING, logger="subscription_detection")

    txs = load_transactions_from_csv(DATA_DIR / "transactions_jan_apr_2024.csv")

    assert [t.id for t in txs] == [f"t{i:02d}" for i in range(1, 12) if i != 10]
    first = txs[0]
    assert first.date == date(2024, 1, 5)
    assert first.merchant == "NETFLIX.COM"
    assert first.amount == Decimal("-15.99")
    assert first.description == "Netflix monthly subscription"
    assert txs[5].description == ""
    assert "ingest:row_skipped" in caplog.text


def test_generic_header_is_case_insensitive_and_id_optional(tmp_path: Path):
    p = tmp_path / "tx.csv"
    p.write_text(
        "Date,Merchant,Amount,Notes\n"
        "2024-05-01,Hulu,-7.99,ignored\n"
        "\n"
        "2024-06-01T08:30:00,Hulu,-7.99,\n",
        encoding="utf-8-sig",
    )

    txs = load_transactions_from_csv(p)

    assert [(t.id, t.date, t.merchant, t.amount) for t in txs] == [
        (None, date(2024, 5, 1), "Hulu", Decimal("-7.99")),
        (None, date(2024, 6, 1), "Hulu", Decimal("-7.99")),
    ]


def test_amex_export_flips_sign_and_parses_short_years(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.WARNING, logger="subscription_detection")

    txs = load_transactions_from_csv(DATA_DIR / "amex_jan_mar_2024_subset.csv")

    adobe = [t for t in txs if t.merchant == "ADOBE CREATIVE CLOUD"]
    assert [t.date for t in adobe] == [date(2024, 1, 15), date(2024, 2, 14), date(2024, 3, 15)]
    assert {t.amount for t in adobe} == {Decimal("-54.99")}
    assert adobe[0].id == "320240150001"
    assert adobe[0].description == "ADOBE *CREATIVE CLD"

    payment = next(t for t in txs if t.merchant.startswith("AUTOPAY"))
    assert payment.amount == Decimal("500.00")
    assert len(txs) == 5
    assert "ingest:row_skipped" in caplog.text


def test_unrecognized_header_raises_csv_error(tmp_path: Path):
    p = tmp_path / "bad.csv"
    p.write_text("when,who,how much\n2024-01-01,x,1\n", encoding="utf-8")

    with pytest.raises(csv.Error, match="missing: amount, date, merchant"):
        load_transactions_from_csv(p)


def test_empty_file_raises_csv_error(tmp_path: Path):
    p = tmp_path / "empty.csv"
    p.write_text("", encoding="utf-8")

    with pytest.raises(csv.Error, match="no header"):
        load_transactions_from_csv(p)


def test_missing_file_raises_file_not_found(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_transactions_from_csv(tmp_path / "nope.csv")


def test_overflow_cells_do_not_crash_generic_rows(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
):
    caplog.set_level(logging.WARNING, logger="subscription_detection")
    p = tmp_path / "overflow.csv"
    p.write_text(
        "date,merchant,amount,description\n"
        ",,,,EXTRA\n"
        "2024-05-01,Hulu,-7.99,monthly,trailing\n"
        ",,,,\n",
        encoding="utf-8",
    )

    txs = load_transactions_from_csv(p)

    assert [(t.date, t.merchant, t.description) for t in txs] == [
        (date(2024, 5, 1), "Hulu", "monthly")
    ]
    assert caplog.text.count("ingest:row_skipped") == 1


def test_overflow_cells_do_not_crash_amex_rows(tmp_path: Path, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.WARNING, logger="subscription_detection")
    p = tmp_path / "amex_overflow.csv"
    p.write_text(
        "Date,Description,Amount,Appears On Your Statement As,Reference\n"
        ",,,,,EXTRA\n"
        "01/15/2024,ADOBE,54.99,ADOBE *CC,r1,EXTRA\n",
        encoding="utf-8",
    )

    txs = load_transactions_from_csv(p)

    assert [(t.id, t.merchant, t.amount) for t in txs] == [("r1", "ADOBE", Decimal("-54.99"))]
    assert caplog.text.count("ingest:row_skipped") == 1


def test_row_is_blank_counts_overflow_cells():
    assert row_is_blank({"date": "", "amount": None})
    assert row_is_blank({"date": " ", None: ["", " "]})
    assert not row_is_blank({"date": "", None: ["EXTRA"]})

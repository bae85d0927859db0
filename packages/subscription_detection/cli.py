# ruff: noqa: I001
"""CLI for the ``subscription_detection`` package.

Typer-based console interface over :mod:`subscription_detection.api`.
Environment variables (``OPENAI_API_KEY``, ``DATABASE_URL``, ``SD_*``) are
loaded from a local ``.env`` with ``python-dotenv`` before any command runs.
Command handlers (``cmd_*``) return a process exit code; errors are written
to stderr as ``Error: ...`` lines.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import SubscriptionCandidate
from .settings import DetectionSettings, load_settings

_OUTPUT_FORMATS = ("tsv", "json")


# ---- Small module-level helpers used by CLI commands -------------------------


def _resolve_settings(*, threshold: float | None) -> DetectionSettings | None:
    """Load settings from env plus CLI overrides; print and return None on error."""

    try:
        return load_settings(confidence_threshold=threshold)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


def _emit(candidates: Sequence[SubscriptionCandidate], output: str) -> None:
    if output == "json":
        print(json.dumps([c.to_dict() for c in candidates], indent=2))
        return
    # One line per candidate: merchant, frequency, amount, confidence, next date
    for c in candidates:
        print(
            f"{c.merchant}\t{c.frequency}\t{c.amount_cents}\t{c.confidence:.3f}\t"
            f"{c.next_billing_date.isoformat()}"
        )


def _detect(transactions, settings: DetectionSettings, *, use_llm: bool):
    from .api import detect_all, detect_recurring_patterns

    if use_llm:
        return asyncio.run(detect_all(transactions, settings=settings))
    return detect_recurring_patterns(transactions, settings=settings)


# ---- Command handlers --------------------------------------------------------


def cmd_detect_subscriptions(
    csv_path: str,
    *,
    use_llm: bool = False,
    threshold: float | None = None,
    output: str = "tsv",
    persist: bool = False,
    user_id: str | None = None,
    database_url: str | None = None,
) -> int:
    """Detect subscriptions in a transactions CSV and print them ranked.

    Behavior
    --------
    - Reads ``csv_path`` with :func:`subscription_detection.ingest.load_transactions_from_csv`
      (generic or AmEx-like header).
    - Runs statistical detection, or the external detector with statistical
      fallback when ``use_llm`` is set.
    - With ``persist``, upserts the transactions and the candidates for
      ``user_id`` into the database.
    - Prints one tab-separated line per candidate, or a JSON array.
    """

    import csv

    from .ingest import load_transactions_from_csv

    if output not in _OUTPUT_FORMATS:
        print(f"Error: unknown output format: {output!r}", file=sys.stderr)
        return 1
    if persist and not user_id:
        print("Error: --user-id is required with --persist.", file=sys.stderr)
        return 1

    settings = _resolve_settings(threshold=threshold)
    if settings is None:
        return 1

    try:
        transactions = load_transactions_from_csv(csv_path)
    except FileNotFoundError:
        print(f"Error: File not found: {csv_path}", file=sys.stderr)
        return 1
    except PermissionError:
        print(f"Error: Permission denied: {csv_path}", file=sys.stderr)
        return 1
    except csv.Error as e:
        print(f"Error: Failed to parse CSV: {e}", file=sys.stderr)
        return 1

    if persist and user_id:
        try:
            from db.client import session_scope
            from .persistence import upsert_transactions

            with session_scope(database_url=database_url) as session:
                upsert_transactions(session, user_id=user_id, transactions=transactions)
        except Exception as e:
            print(f"Error: persistence (transactions) failed: {e}", file=sys.stderr)
            return 1

    candidates = _detect(transactions, settings, use_llm=use_llm)

    if persist and user_id:
        try:
            from .persistence import DbSubscriptionSink

            DbSubscriptionSink(database_url=database_url).save_candidates(user_id, candidates)
        except Exception as e:
            print(f"Error: persistence (subscriptions) failed: {e}", file=sys.stderr)
            return 1

    _emit(candidates, output)
    return 0


def cmd_refresh_subscriptions(
    user_id: str,
    *,
    use_llm: bool = False,
    threshold: float | None = None,
    output: str = "tsv",
    database_url: str | None = None,
) -> int:
    """Re-run detection over a user's stored transactions and upsert the result."""

    if output not in _OUTPUT_FORMATS:
        print(f"Error: unknown output format: {output!r}", file=sys.stderr)
        return 1
    settings = _resolve_settings(threshold=threshold)
    if settings is None:
        return 1

    try:
        from .api import detect_subscriptions, detect_subscriptions_with_ai
        from .persistence import DbSubscriptionSink, DbTransactionSource

        source = DbTransactionSource(database_url=database_url)
        sink = DbSubscriptionSink(database_url=database_url)
        if use_llm:
            candidates = asyncio.run(
                detect_subscriptions_with_ai(user_id, source=source, sink=sink, settings=settings)
            )
        else:
            candidates = detect_subscriptions(user_id, source=source, sink=sink, settings=settings)
    except Exception as e:
        print(f"Error: refresh failed: {e}", file=sys.stderr)
        return 1

    _emit(candidates, output)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Detect recurring payments (subscriptions) in transaction history. "
        "Loads OPENAI_API_KEY, DATABASE_URL and SD_* settings from a local .env."
    ),
)

# Module-level option objects keep calls out of parameter defaults (ruff B008).
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Path to a transactions CSV (date,merchant,amount,description[,id] or AmEx-like)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)
USE_LLM_OPTION: OptionInfo = typer.Option(
    False, "--use-llm", help="Try the OpenAI detector first; falls back to statistics."
)
THRESHOLD_OPTION: OptionInfo = typer.Option(
    None, "--threshold", help="Override SD_CONFIDENCE_THRESHOLD (0..1)."
)
OUTPUT_OPTION: OptionInfo = typer.Option("tsv", "--output", help="Output format: tsv or json.")
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


@app.command("detect-subscriptions")
def detect_subscriptions_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    use_llm: bool = USE_LLM_OPTION,
    threshold: float | None = THRESHOLD_OPTION,
    output: str = OUTPUT_OPTION,
    persist: bool = typer.Option(
        False, help="Persist transactions and detected subscriptions to the database."
    ),
    user_id: str | None = typer.Option(None, help="User the transactions belong to."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Detect subscriptions in a CSV and print them ranked by confidence."""

    code = cmd_detect_subscriptions(
        str(csv_path),
        use_llm=use_llm,
        threshold=threshold,
        output=output,
        persist=persist,
        user_id=user_id,
        database_url=database_url,
    )
    raise typer.Exit(code)


@app.command("refresh-subscriptions")
def refresh_subscriptions_cmd(
    user_id: str = typer.Option(..., help="User whose stored transactions to analyze."),
    *,
    use_llm: bool = USE_LLM_OPTION,
    threshold: float | None = THRESHOLD_OPTION,
    output: str = OUTPUT_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Detect subscriptions from stored transactions and upsert them."""

    code = cmd_refresh_subscriptions(
        user_id,
        use_llm=use_llm,
        threshold=threshold,
        output=output,
        database_url=database_url,
    )
    raise typer.Exit(code)


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()

"""CSV ingestion into :class:`~subscription_detection.models.Transaction`."""

from .utils import load_transactions_from_csv, parse_amount

__all__ = ["load_transactions_from_csv", "parse_amount"]

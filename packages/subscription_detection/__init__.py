"""Public interface for the ``subscription_detection`` package.

This module exposes the package's API functions and public models/types as the
stable import surface. There is no runtime logic here, only re-exports.
"""

from .api import (
    detect_all,
    detect_recurring_patterns,
    detect_subscriptions,
    detect_subscriptions_with_ai,
)
from .detection import add_billing_period, analyze_merchant_group
from .external import OpenAISubscriptionInference, SubscriptionInference
from .merchants import group_by_merchant, normalize_merchant
from .models import (
    ExternalSubscription,
    FrequencyEstimate,
    MerchantGroup,
    SubscriptionCandidate,
    Transaction,
    Transactions,
)
from .ranking import rank_candidates
from .settings import DetectionSettings, load_settings
from .sources import (
    CandidateSink,
    InMemoryCandidateSink,
    InMemoryTransactionSource,
    TransactionSource,
)

__all__ = [
    # API
    "detect_all",
    "detect_recurring_patterns",
    "detect_subscriptions",
    "detect_subscriptions_with_ai",
    "analyze_merchant_group",
    "add_billing_period",
    "group_by_merchant",
    "normalize_merchant",
    "rank_candidates",
    # Collaborators
    "CandidateSink",
    "InMemoryCandidateSink",
    "InMemoryTransactionSource",
    "OpenAISubscriptionInference",
    "SubscriptionInference",
    "TransactionSource",
    # Models / types / config
    "DetectionSettings",
    "ExternalSubscription",
    "FrequencyEstimate",
    "MerchantGroup",
    "SubscriptionCandidate",
    "Transaction",
    "Transactions",
    "load_settings",
]

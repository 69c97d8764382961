"""Pydantic schemas for API requests and responses.

Sub-modules:
- payments: Intents, subscriptions, donations
- catalog: Tree prices, achievements and projects
- users: Profiles, leaderboard, share tokens
- admin: Reconciliation report
"""
from .admin import CounterMismatch, MissingAchievement, ReconciliationReport
from .catalog import (
    AchievementOut,
    PricesOut,
    ProjectListOut,
    ProjectOut,
    TreePriceOut,
    TreePriceUpdate,
    UserAchievementOut,
)
from .payments import (
    DonationListOut,
    DonationOut,
    PaymentIntentCreate,
    PaymentIntentOut,
    SubscriptionIntentCreate,
    SubscriptionIntentOut,
    SubscriptionOut,
    WebhookAck,
)
from .users import (
    DonationShareOut,
    LeaderboardEntry,
    ProfileSummaryOut,
    ReferralStatsOut,
    ShareResolveOut,
    ShareTokenCreate,
    ShareTokenOut,
    UserOut,
)

__all__ = [
    # Admin
    "CounterMismatch",
    "MissingAchievement",
    "ReconciliationReport",
    # Catalog
    "AchievementOut",
    "PricesOut",
    "ProjectListOut",
    "ProjectOut",
    "TreePriceOut",
    "TreePriceUpdate",
    "UserAchievementOut",
    # Payments
    "DonationListOut",
    "DonationOut",
    "PaymentIntentCreate",
    "PaymentIntentOut",
    "SubscriptionIntentCreate",
    "SubscriptionIntentOut",
    "SubscriptionOut",
    "WebhookAck",
    # Users
    "DonationShareOut",
    "LeaderboardEntry",
    "ProfileSummaryOut",
    "ReferralStatsOut",
    "ShareResolveOut",
    "ShareTokenCreate",
    "ShareTokenOut",
    "UserOut",
]

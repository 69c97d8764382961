"""Admin reconciliation schemas."""
from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel


class CounterMismatch(BaseModel):
    user_id: uuid.UUID
    total_trees: int
    expected_total_trees: int
    donations_count: int
    expected_donations_count: int
    last_donation_at: dt.datetime | None = None
    expected_last_donation_at: dt.datetime | None = None


class MissingAchievement(BaseModel):
    user_id: uuid.UUID
    total_trees: int
    achievement_code: str
    threshold_trees: int


class ReconciliationReport(BaseModel):
    checked_users: int
    counter_mismatches: list[CounterMismatch]
    missing_achievements: list[MissingAchievement]
    unresolved_webhook_failures: int = 0
    generated_at: dt.datetime

    @property
    def ok(self) -> bool:
        return not (self.counter_mismatches or self.missing_achievements or self.unresolved_webhook_failures)

"""Tests for how API response schemas render ledger rows."""

import uuid
from datetime import date, datetime, timedelta, timezone

from backend.schemas.base import to_utc_iso
from backend.schemas.wallet import ClaimDailyRewardResponse, LedgerEntryResponse


def _entry(**overrides):
    fields = {
        "entry_id": 7,
        "kind": "entry_fee",
        "amount": -10,
        "status": "completed",
        "is_withdrawable": True,
        "created_by": "system",
        "created_at": datetime(2025, 3, 1, 14, 30),
    }
    fields.update(overrides)
    return LedgerEntryResponse(**fields)


def test_naive_timestamps_are_rendered_as_utc():
    assert to_utc_iso(datetime(2025, 3, 1, 14, 30)) == "2025-03-01T14:30:00Z"


def test_aware_timestamps_are_converted_to_utc():
    india = timezone(timedelta(hours=5, minutes=30))

    assert to_utc_iso(datetime(2025, 3, 1, 20, 0, tzinfo=india)) == "2025-03-01T14:30:00Z"


def test_ledger_entry_dump_uses_wire_values():
    match_id = uuid.uuid4()

    data = _entry(related_match_id=match_id).model_dump()

    assert data["created_at"] == "2025-03-01T14:30:00Z"
    assert data["related_match_id"] == str(match_id)
    assert data["related_request_id"] is None
    assert data["amount"] == -10


def test_json_and_python_dumps_agree():
    entry = _entry(related_match_id=uuid.uuid4(), resolved_at=datetime(2025, 3, 2, 9, 0))

    assert entry.model_dump() == entry.model_dump(mode="json")


def test_dates_are_iso_strings():
    data = ClaimDailyRewardResponse(
        reward_date=date(2025, 3, 1), streak_count=3, reward_coins=20, new_balance=120
    ).model_dump()

    assert data["reward_date"] == "2025-03-01"
    assert data["reward_coins"] == 20

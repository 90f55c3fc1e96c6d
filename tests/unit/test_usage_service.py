from datetime import date, datetime, timedelta, timezone

import pytest

from app.exceptions import LimitReachedError
from app.services.usage_service import (
    check_usage_limit,
    enforce_usage_limit,
    get_limit,
    get_usage_count,
    get_usage_summary,
    track_usage,
    utc_today,
)

TODAY = date(2026, 3, 14)


@pytest.mark.unit
def test_limits_per_tier():
    assert get_limit("free", "search") == 10
    assert get_limit("free", "import") == 5
    assert get_limit("free", "ai_analysis") == 3
    assert get_limit("pro", "search") == -1
    # unknown tiers fall back to free
    assert get_limit("enterprise", "search") == 10


@pytest.mark.unit
def test_utc_today_uses_utc_day():
    late_evening_in_la = datetime(2026, 3, 14, 20, 0, tzinfo=timezone(timedelta(hours=-7)))
    assert utc_today(lambda: late_evening_in_la) == date(2026, 3, 15)


@pytest.mark.integration
def test_track_usage_increments_single_row(db_session, free_user):
    for _ in range(3):
        track_usage(db_session, free_user.id, "search", day=TODAY)

    assert get_usage_count(db_session, free_user.id, "search", day=TODAY) == 3
    assert get_usage_count(db_session, free_user.id, "import", day=TODAY) == 0


@pytest.mark.integration
def test_free_quota_blocks_after_limit(db_session, free_user):
    for _ in range(10):
        enforce_usage_limit(db_session, free_user.id, "search", "free", day=TODAY)
        track_usage(db_session, free_user.id, "search", day=TODAY)

    with pytest.raises(LimitReachedError) as excinfo:
        enforce_usage_limit(db_session, free_user.id, "search", "free", day=TODAY)
    assert excinfo.value.status_code == 429
    assert excinfo.value.error_code == "LIMIT_REACHED"

    # a new UTC day starts from zero
    assert check_usage_limit(db_session, free_user.id, "search", "free", day=TODAY + timedelta(days=1))


@pytest.mark.integration
def test_pro_is_unlimited(db_session, pro_user):
    for _ in range(25):
        track_usage(db_session, pro_user.id, "ai_analysis", day=TODAY)
    assert check_usage_limit(db_session, pro_user.id, "ai_analysis", "pro", day=TODAY)


@pytest.mark.integration
def test_usage_summary(db_session, free_user, pro_user):
    track_usage(db_session, free_user.id, "search", day=TODAY)
    track_usage(db_session, free_user.id, "search", day=TODAY)
    track_usage(db_session, free_user.id, "import", day=TODAY)

    summary = get_usage_summary(db_session, free_user.id, "free", day=TODAY)
    assert summary["search"] == {"used": 2, "limit": 10, "remaining": 8}
    assert summary["import"] == {"used": 1, "limit": 5, "remaining": 4}
    assert summary["ai_analysis"] == {"used": 0, "limit": 3, "remaining": 3}

    pro_summary = get_usage_summary(db_session, pro_user.id, "pro", day=TODAY)
    assert pro_summary["search"] == {"used": 0, "limit": "unlimited", "remaining": "unlimited"}

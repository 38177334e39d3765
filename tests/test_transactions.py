from datetime import datetime, timedelta, timezone

import pytest

import sixgate.config as config
from sixgate.services import transactions
from sixgate.services.transactions import truncate_to_grain

WINDOW = {"start": "2025-07-01", "end": "2025-12-31T23:59:59Z"}


def _insert_transaction(store, org_id, when, amount, **extra):
    row = {
        "organization_id": org_id,
        "transaction_type": "sale",
        "transaction_code": f"TXN-{when:%Y%m%d%H%M%S}-{amount}",
        "smart_code": "HERA.SALON.SALE.v1",
        "transaction_date": when,
        "total_amount": amount,
        "metadata": {},
    }
    row.update(extra)
    return store.insert("universal_transactions", row)


@pytest.mark.parametrize(
    "grain, expected",
    [
        ("hour", datetime(2025, 8, 13, 15, tzinfo=timezone.utc)),
        ("day", datetime(2025, 8, 13, tzinfo=timezone.utc)),
        ("week", datetime(2025, 8, 10, tzinfo=timezone.utc)),
        ("month", datetime(2025, 8, 1, tzinfo=timezone.utc)),
        ("quarter", datetime(2025, 7, 1, tzinfo=timezone.utc)),
        ("year", datetime(2025, 1, 1, tzinfo=timezone.utc)),
    ],
)
def test_truncate_to_grain(grain, expected):
    moment = datetime(2025, 8, 13, 15, 42, 7, tzinfo=timezone.utc)
    assert truncate_to_grain(moment, grain, week_start="sunday") == expected


def test_week_truncation_monday_start():
    moment = datetime(2025, 8, 10, 9, tzinfo=timezone.utc)  # a Sunday
    assert truncate_to_grain(moment, "week", week_start="monday") == datetime(2025, 8, 4, tzinfo=timezone.utc)
    assert truncate_to_grain(moment, "week", week_start="sunday") == datetime(2025, 8, 10, tzinfo=timezone.utc)


def _seed_august(store, org_id):
    _insert_transaction(store, org_id, datetime(2025, 8, 1, 10, tzinfo=timezone.utc), 10)
    _insert_transaction(store, org_id, datetime(2025, 8, 3, 10, tzinfo=timezone.utc), 20)
    _insert_transaction(store, org_id, datetime(2025, 8, 8, 10, tzinfo=timezone.utc), 30)


def test_weekly_buckets_with_monday_weeks(server_db, tenants, store, monkeypatch):
    monkeypatch.setattr(config, "WEEK_START", "monday")
    _seed_august(store, tenants.a)

    result = transactions.query_transactions(
        tenants.a,
        time={**WINDOW, "grain": "week"},
        group_by=["time"],
        metrics=["sum"],
    )

    assert result["mode"] == "aggregated"
    assert [(group["key"], group["sum"]) for group in result["groups"]] == [
        ("2025-07-28T00:00:00+00:00", 30.0),
        ("2025-08-04T00:00:00+00:00", 30.0),
    ]
    assert "count" not in result["groups"][0]


def test_weekly_buckets_with_sunday_weeks(server_db, tenants, store, monkeypatch):
    monkeypatch.setattr(config, "WEEK_START", "sunday")
    _seed_august(store, tenants.a)

    result = transactions.query_transactions(
        tenants.a,
        time={**WINDOW, "grain": "week"},
        group_by=["time"],
        metrics=["sum", "count", "avg"],
    )

    groups = {group["key"]: group for group in result["groups"]}
    assert groups["2025-07-27T00:00:00+00:00"]["sum"] == 10.0
    assert groups["2025-08-03T00:00:00+00:00"]["sum"] == 50.0
    assert groups["2025-08-03T00:00:00+00:00"]["count"] == 2
    assert groups["2025-08-03T00:00:00+00:00"]["avg"] == 25.0


def test_group_by_requires_grain(server_db, tenants):
    result = transactions.query_transactions(tenants.a, group_by=["time"])
    assert result["guardrail"] == "AGGREGATION_GRAIN_MISSING"
    assert "grain" in result["correction"]


def test_raw_results_truncate_but_groups_do_not(server_db, tenants, store):
    start = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)
    for day in range(120):
        _insert_transaction(store, tenants.a, start + timedelta(days=day), 5)
    window = {"start": "2024-12-31", "end": "2025-06-30"}

    raw = transactions.query_transactions(tenants.a, time=window, limit=500)
    assert raw["mode"] == "raw"
    assert raw["count"] == 50
    assert raw["matched"] == 120
    assert raw["truncated"] is True
    assert raw["warning"]
    # newest first
    assert raw["transactions"][0]["transaction_date"].startswith("2025-04-30")

    grouped = transactions.query_transactions(
        tenants.a,
        time={**window, "grain": "day"},
        group_by=["time"],
        limit=500,
    )
    assert grouped["group_count"] == 120
    assert len(grouped["groups"]) == 120
    assert grouped["groups"][0]["count"] == 1
    assert grouped["groups"][0]["sum"] == 5.0


def _seed_daily(store, org_id, days, amount=5):
    start = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)
    for day in range(days):
        _insert_transaction(store, org_id, start + timedelta(days=day), amount)


def test_grouped_totals_cover_the_whole_window_by_default(server_db, tenants, store):
    _seed_daily(store, tenants.a, 120)

    result = transactions.query_transactions(
        tenants.a,
        time={"start": "2025-01-01", "end": "2025-12-31", "grain": "year"},
        group_by=["time"],
    )

    assert result["rows_scanned"] == 120
    assert result["truncated"] is False
    assert result["warning"] is None
    assert [(group["count"], group["sum"]) for group in result["groups"]] == [(120, 600.0)]


def test_grouped_totals_flag_the_transaction_ceiling(server_db, tenants, store, monkeypatch):
    monkeypatch.setattr(config, "MAX_TRANSACTION_LIMIT", 100)
    _seed_daily(store, tenants.a, 120)

    result = transactions.query_transactions(
        tenants.a,
        time={"start": "2025-01-01", "end": "2025-12-31", "grain": "year"},
        group_by=["time"],
    )

    assert result["rows_scanned"] == 100
    assert result["truncated"] is True
    assert result["warning"]


def test_raw_limit_below_preview_still_reports_truncation(server_db, tenants, store):
    _seed_daily(store, tenants.a, 120)

    result = transactions.query_transactions(
        tenants.a,
        time={"start": "2024-12-31", "end": "2025-06-30"},
        limit=50,
    )

    assert result["count"] == 50
    assert result["matched"] == 50
    assert result["more_available"] is True
    assert result["truncated"] is True
    assert "more than 50" in result["warning"]

    exact = transactions.query_transactions(
        tenants.a,
        time={"start": "2024-12-31", "end": "2025-06-30"},
        limit=120,
    )
    assert exact["more_available"] is False
    assert exact["matched"] == 120


def test_default_window_is_trailing_thirty_days(server_db, tenants, store):
    now = datetime.now(timezone.utc)
    _insert_transaction(store, tenants.a, now - timedelta(days=2), 7)
    _insert_transaction(store, tenants.a, now - timedelta(days=45), 9)

    result = transactions.query_transactions(tenants.a)
    assert result["count"] == 1
    assert result["transactions"][0]["total_amount"] == 7.0
    assert result["truncated"] is False
    assert result["warning"] is None


def test_metadata_dimensions_and_filters(server_db, tenants, store):
    when = datetime(2025, 8, 5, 9, tzinfo=timezone.utc)
    _insert_transaction(store, tenants.a, when, 10, metadata={"channel": "pos"})
    _insert_transaction(store, tenants.a, when + timedelta(hours=1), 15, metadata={"channel": "online"})
    _insert_transaction(store, tenants.a, when + timedelta(hours=2), 20)

    grouped = transactions.query_transactions(
        tenants.a,
        time={**WINDOW, "grain": "month"},
        group_by=["time", "channel"],
    )
    keys = [group["key"] for group in grouped["groups"]]
    assert keys == [
        "2025-08-01T00:00:00+00:00|online",
        "2025-08-01T00:00:00+00:00|pos",
        "2025-08-01T00:00:00+00:00|unknown",
    ]

    filtered = transactions.query_transactions(tenants.a, time=WINDOW, filters={"channel": "pos"})
    assert filtered["count"] == 1
    assert filtered["transactions"][0]["total_amount"] == 10.0


def test_transaction_query_tenant_isolation(server_db, tenants, store):
    _seed_august(store, tenants.a)
    result = transactions.query_transactions(tenants.b, time=WINDOW)
    assert result["count"] == 0


def test_unknown_metric_is_rejected(server_db, tenants):
    result = transactions.query_transactions(
        tenants.a,
        time={"grain": "day"},
        group_by=["time"],
        metrics=["median"],
    )
    assert result["field"] == "metrics"

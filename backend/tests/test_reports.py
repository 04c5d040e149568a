from datetime import datetime, timedelta, timezone

import pytest

from backend.app.errors import ValidationError
from backend.app.hub import build_hub
from backend.app.services.reports import sale_amount

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _seeded_hub(tz=timezone.utc):
    hub = build_hub(clock=lambda: NOW, master_store_id=1, tz=tz)
    hub.coordinator.register_store({"id": 1, "name": "Main", "address": "1 Main St", "phone": "555"})
    hub.coordinator.register_store({"id": 3, "name": "Quiet"})
    hub.coordinator.push(
        1,
        [
            {"sale_number": "S1", "total": 100, "created_at": "2026-03-10T09:00:00Z"},
            {"sale_number": "S2", "total": "50.5", "created_at": "2026-03-09T10:00:00Z"},
            {"sale_number": "S3", "total": 7},
        ],
    )
    hub.coordinator.push(2, [{"sale_number": "T1", "total": 30, "created_at": "2026-03-01T10:00:00Z"}])
    return hub


@pytest.mark.parametrize(
    "sale,expected",
    [
        ({"total": 12.5}, 12.5),
        ({"total": "3.25"}, 3.25),
        ({"total": "n/a"}, 0),
        ({"total": None}, 0),
        ({"total": True}, 0),
        ({}, 0),
    ],
)
def test_sale_amount(sale, expected):
    assert sale_amount(sale) == expected


def test_consolidated_report_totals_match_store_rows():
    out = _seeded_hub().reports.consolidated_report()

    assert out["generatedAt"] == NOW.isoformat()
    assert [s["id"] for s in out["stores"]] == [1, 2]

    main = out["stores"][0]
    assert main["name"] == "Main"
    assert main["address"] == "1 Main St"
    # S3 has no event time, so no date range can include it.
    assert main["transactions"] == 2
    assert main["revenue"] == pytest.approx(150.5)
    assert main["avgTicket"] == pytest.approx(75.25)
    assert list(main["salesByDay"]) == ["2026-03-09", "2026-03-10"]
    assert main["salesByDay"]["2026-03-10"] == {"revenue": 100, "transactions": 1}
    assert main["lastSale"]["sale_number"] == "S1"

    inferred = out["stores"][1]
    assert inferred["name"] == "Store 2"
    assert inferred["address"] is None

    totals = out["totals"]
    assert totals["totalRevenue"] == pytest.approx(sum(s["revenue"] for s in out["stores"]))
    assert totals["totalTransactions"] == sum(s["transactions"] for s in out["stores"])
    assert totals["avgTicket"] == pytest.approx(180.5 / 3)


def test_consolidated_report_date_range_is_inclusive():
    out = _seeded_hub().reports.consolidated_report("2026-03-10", "2026-03-10")
    by_id = {s["id"]: s for s in out["stores"]}

    assert by_id[1]["revenue"] == 100
    assert by_id[1]["transactions"] == 1
    # Stores with sales outside the range are still listed with zeros.
    assert by_id[2]["revenue"] == 0
    assert by_id[2]["avgTicket"] == 0
    assert by_id[2]["lastSale"] is None
    assert out["totals"]["totalTransactions"] == 1


def test_consolidated_report_without_sales():
    hub = build_hub(clock=lambda: NOW, tz=timezone.utc)
    out = hub.reports.consolidated_report()
    assert out["stores"] == []
    assert out["totals"] == {"totalRevenue": 0, "totalTransactions": 0, "avgTicket": 0}


@pytest.mark.parametrize(
    "start,end",
    [
        ("not-a-date", None),
        (None, "2026-13-40"),
        ("2026-03-10", "2026-03-09"),
    ],
)
def test_consolidated_report_rejects_bad_ranges(start, end):
    with pytest.raises(ValidationError):
        _seeded_hub().reports.consolidated_report(start, end)


def test_store_status_lists_registered_then_inferred_stores():
    stores = _seeded_hub().reports.store_status()["stores"]
    assert [s["id"] for s in stores] == [1, 3, 2]

    main, quiet, inferred = stores
    assert main["name"] == "Main"
    assert main["totalSales"] == 3
    assert main["totalRevenue"] == pytest.approx(157.5)
    assert main["todaySales"] == 1
    assert main["todayRevenue"] == 100
    assert main["lastSaleAt"] == "2026-03-10T09:00:00Z"
    assert main["isActive"] is True

    assert quiet["totalSales"] == 0
    assert quiet["lastSaleAt"] is None
    assert quiet["isActive"] is False

    assert inferred["name"] == "Store 2"
    assert inferred["isActive"] is False


def test_store_status_today_follows_report_zone():
    # 03:00 UTC on the 10th is still the 9th five hours west of UTC.
    west = timezone(timedelta(hours=-5))
    hub = build_hub(clock=lambda: NOW, tz=west)
    hub.coordinator.push(1, [{"sale_number": "late", "total": 5, "created_at": "2026-03-10T03:00:00Z"}])
    hub.coordinator.push(1, [{"sale_number": "today", "total": 8, "created_at": "2026-03-10T06:00:00Z"}])

    status = hub.reports.store_status()["stores"][0]
    assert status["todaySales"] == 1
    assert status["todayRevenue"] == 8

    report = hub.reports.consolidated_report()
    assert list(report["stores"][0]["salesByDay"]) == ["2026-03-09", "2026-03-10"]


def test_store_detail_limit_and_order():
    hub = _seeded_hub()
    out = hub.reports.store_detail(1, limit="1")
    assert out["storeId"] == 1
    assert out["store"]["name"] == "Main"
    assert [s["sale_number"] for s in out["sales"]] == ["S1"]
    assert out["count"] == 1
    assert out["totalRevenue"] == 100

    everything = hub.reports.store_detail(1)
    assert [s["sale_number"] for s in everything["sales"]] == ["S1", "S2"]
    assert hub.reports.store_detail(1, limit="0")["sales"] == []


def test_store_detail_for_unknown_store():
    out = _seeded_hub().reports.store_detail(99)
    assert out["store"] == {"id": 99, "name": "Store 99"}
    assert out["sales"] == []
    assert out["totalRevenue"] == 0


@pytest.mark.parametrize("limit", ["-1", "ten"])
def test_store_detail_rejects_bad_limit(limit):
    with pytest.raises(ValidationError):
        _seeded_hub().reports.store_detail(1, limit=limit)


def test_compare_builds_a_dense_window_oldest_first():
    out = _seeded_hub().reports.compare("7")
    assert out["period"] == 7

    main, inferred = out["comparison"]
    assert main["storeId"] == 1
    assert main["storeName"] == "Main"
    assert [d["date"] for d in main["dailyData"]] == [
        "2026-03-04",
        "2026-03-05",
        "2026-03-06",
        "2026-03-07",
        "2026-03-08",
        "2026-03-09",
        "2026-03-10",
    ]
    assert main["dailyData"][-1] == {"date": "2026-03-10", "revenue": 100, "transactions": 1}
    assert main["totalRevenue"] == pytest.approx(150.5)
    assert main["totalTransactions"] == 2

    # T1 is older than the window.
    assert inferred["storeName"] == "Store 2"
    assert inferred["totalRevenue"] == 0
    assert len(inferred["dailyData"]) == 7


def test_compare_single_day():
    out = _seeded_hub().reports.compare(1)
    assert [d["date"] for d in out["comparison"][0]["dailyData"]] == ["2026-03-10"]


@pytest.mark.parametrize("period", ["0", "367", "week", None])
def test_compare_rejects_bad_period(period):
    with pytest.raises(ValidationError):
        _seeded_hub().reports.compare(period)

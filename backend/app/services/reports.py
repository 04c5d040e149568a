"""
Owner-facing statistics derived from the replicated sales ledgers.

Every report works on one snapshot of all ledgers. Money is summed as plain
floats without rounding; formatting to two decimals is the client's job.
"""

from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, Optional

from ..errors import ValidationError
from ..repositories import SalesRepository, StoreRegistry
from ..timeutil import (
    day_key,
    event_sort_key,
    event_time,
    local_midnight,
    parse_range_end,
    parse_range_start,
    report_zone,
    utcnow,
)
from .sync_coordinator import find_store, known_store_ids

ACTIVE_WINDOW = timedelta(hours=24)
DEFAULT_DETAIL_LIMIT = 100
MAX_COMPARE_DAYS = 366


def sale_amount(sale: dict[str, Any]) -> float:
    v = sale.get("total")
    if v is None or isinstance(v, bool):
        return 0
    if isinstance(v, (int, float)):
        return v
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0


def _avg(revenue: float, transactions: int) -> float:
    return revenue / transactions if transactions > 0 else 0


def _raw_event_time(sale: dict[str, Any]) -> Any:
    return sale.get("created_at") or sale.get("timestamp")


class ReportAggregator:
    def __init__(
        self,
        sales: SalesRepository,
        stores: StoreRegistry,
        *,
        clock: Callable[[], datetime] = utcnow,
        tz: Optional[tzinfo] = None,
    ):
        self._sales = sales
        self._stores = stores
        self._clock = clock
        self._tz = tz

    @property
    def tz(self) -> tzinfo:
        return self._tz or report_zone()

    def _range(self, start_date: Optional[str], end_date: Optional[str], now: datetime) -> tuple[datetime, datetime]:
        start = parse_range_start(start_date, self.tz)
        if start is None:
            raise ValidationError("startDate must be YYYY-MM-DD or an ISO-8601 timestamp")
        end = parse_range_end(end_date, now, self.tz)
        if end is None:
            raise ValidationError("endDate must be YYYY-MM-DD or an ISO-8601 timestamp")
        if end < start:
            raise ValidationError("endDate is before startDate")
        return start, end

    def _in_range(self, sales: list[dict[str, Any]], start: datetime, end: datetime) -> list[tuple[datetime, dict[str, Any]]]:
        out = []
        for sale in sales:
            t = event_time(sale, self.tz)
            if t is not None and start <= t <= end:
                out.append((t, sale))
        return out

    def consolidated_report(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> dict[str, Any]:
        now = self._clock()
        start, end = self._range(start_date, end_date, now)
        ledgers = self._sales.list_all()

        stores_out = []
        total_revenue = 0
        total_transactions = 0
        for store_id, sales in ledgers.items():
            if not sales:
                continue
            info = find_store(self._stores, store_id)
            filtered = self._in_range(sales, start, end)

            revenue = 0
            by_day: dict[str, dict[str, Any]] = {}
            for t, sale in filtered:
                amount = sale_amount(sale)
                revenue += amount
                bucket = by_day.setdefault(day_key(t, self.tz), {"revenue": 0, "transactions": 0})
                bucket["revenue"] += amount
                bucket["transactions"] += 1

            last_sale = max(filtered, key=lambda ts: ts[0])[1] if filtered else None
            stores_out.append(
                {
                    "id": store_id,
                    "name": info.get("name"),
                    "address": info.get("address"),
                    "phone": info.get("phone"),
                    "revenue": revenue,
                    "transactions": len(filtered),
                    "avgTicket": _avg(revenue, len(filtered)),
                    "salesByDay": dict(sorted(by_day.items())),
                    "lastSale": last_sale,
                }
            )
            total_revenue += revenue
            total_transactions += len(filtered)

        stores_out.sort(key=lambda s: s["revenue"], reverse=True)
        return {
            "generatedAt": now.isoformat(),
            "period": {"start": start.isoformat(), "end": end.isoformat()},
            "stores": stores_out,
            "totals": {
                "totalRevenue": total_revenue,
                "totalTransactions": total_transactions,
                "avgTicket": _avg(total_revenue, total_transactions),
            },
        }

    def store_status(self) -> dict[str, Any]:
        now = self._clock()
        midnight = local_midnight(now, self.tz)
        ledgers = self._sales.list_all()

        out = []
        for store_id in known_store_ids(self._stores, ledgers):
            sales = ledgers.get(store_id, [])
            total_revenue = 0
            today_sales = 0
            today_revenue = 0
            for sale in sales:
                amount = sale_amount(sale)
                total_revenue += amount
                t = event_time(sale, self.tz)
                if t is not None and t >= midnight:
                    today_sales += 1
                    today_revenue += amount

            last = max(sales, key=lambda s: event_sort_key(s, self.tz)) if sales else None
            last_at = event_time(last, self.tz) if last else None
            out.append(
                {
                    **find_store(self._stores, store_id),
                    "totalSales": len(sales),
                    "totalRevenue": total_revenue,
                    "todaySales": today_sales,
                    "todayRevenue": today_revenue,
                    "lastSaleAt": _raw_event_time(last) if last else None,
                    "isActive": last_at is not None and now - last_at < ACTIVE_WINDOW,
                }
            )
        return {"stores": out}

    def store_detail(
        self,
        store_id: int,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Any = DEFAULT_DETAIL_LIMIT,
    ) -> dict[str, Any]:
        try:
            n = DEFAULT_DETAIL_LIMIT if limit is None or str(limit).strip() == "" else int(limit)
        except (TypeError, ValueError):
            raise ValidationError("limit must be an integer") from None
        if n < 0:
            raise ValidationError("limit must be >= 0")

        now = self._clock()
        start, end = self._range(start_date, end_date, now)
        sales = self._sales.list_all().get(store_id, [])
        filtered = self._in_range(sales, start, end)
        filtered.sort(key=lambda ts: ts[0], reverse=True)
        page = [sale for _t, sale in filtered[:n]]

        return {
            "storeId": store_id,
            "store": find_store(self._stores, store_id),
            "sales": page,
            "count": len(page),
            "totalRevenue": sum(sale_amount(s) for s in page),
        }

    def compare(self, period_days: Any = 7) -> dict[str, Any]:
        try:
            days = int(period_days)
        except (TypeError, ValueError):
            raise ValidationError("period must be an integer number of days") from None
        if days < 1 or days > MAX_COMPARE_DAYS:
            raise ValidationError(f"period must be between 1 and {MAX_COMPARE_DAYS}")

        today = local_midnight(self._clock(), self.tz).date()
        window = [(today - timedelta(days=i)).isoformat() for i in range(days - 1, -1, -1)]
        in_window = set(window)

        comparison = []
        for store_id, sales in self._sales.list_all().items():
            by_day: dict[str, list] = {d: [0, 0] for d in window}
            for sale in sales:
                t = event_time(sale, self.tz)
                if t is None:
                    continue
                d = day_key(t, self.tz)
                if d in in_window:
                    by_day[d][0] += sale_amount(sale)
                    by_day[d][1] += 1

            daily = [{"date": d, "revenue": by_day[d][0], "transactions": by_day[d][1]} for d in window]
            comparison.append(
                {
                    "storeId": store_id,
                    "storeName": find_store(self._stores, store_id).get("name"),
                    "dailyData": daily,
                    "totalRevenue": sum(x["revenue"] for x in daily),
                    "totalTransactions": sum(x["transactions"] for x in daily),
                }
            )

        comparison.sort(key=lambda c: c["totalRevenue"], reverse=True)
        return {"period": days, "comparison": comparison}

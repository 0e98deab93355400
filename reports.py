"""
Dashboard figures and the daily sales series behind the admin charts.

Both work on plain order/product documents so they can run over the live
state or a fresh store read. Revenue only ever counts delivered orders.
"""
from collections import Counter
from datetime import datetime, timedelta
from typing import List, Optional

from database import as_utc

PENDING = ("placed", "confirmed", "preparing", "out_for_delivery")


def _local_created(order: dict, tz) -> Optional[datetime]:
    created = as_utc(order.get("created_at"))
    return created.astimezone(tz) if created is not None else None


def _delivered_revenue(orders: List[dict]) -> float:
    return sum(float(o.get("total") or 0) for o in orders if o.get("status") == "delivered")


def _growth(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def top_category(orders: List[dict], products: List[dict]) -> str:
    """Category with the most units ordered, by the products' current categories."""
    categories_by_product = {p["id"]: p.get("categories") or [] for p in products if "id" in p}
    units = Counter()
    for order in orders:
        for item in order.get("items") or []:
            for category in categories_by_product.get(item.get("product_id"), []):
                units[category["name"]] += int(item.get("quantity") or 0)
    if not units:
        return "N/A"
    return units.most_common(1)[0][0]


def dashboard_metrics(orders: List[dict], products: List[dict], now: datetime) -> dict:
    """`now` is store-local and timezone aware; month and day boundaries follow it."""
    tz = now.tzinfo
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = today_start.replace(day=1)
    last_month_start = (month_start - timedelta(days=1)).replace(day=1)

    today, this_month, last_month = [], [], []
    for order in orders:
        created = _local_created(order, tz)
        if created is None:
            continue
        if created >= today_start:
            today.append(order)
        if created >= month_start:
            this_month.append(order)
        elif created >= last_month_start:
            last_month.append(order)

    total = len(orders)
    delivered = sum(1 for o in orders if o.get("status") == "delivered")
    return {
        "total_orders": total,
        "total_products": len(products),
        "pending_orders": sum(1 for o in orders if o.get("status") in PENDING),
        "total_revenue": round(_delivered_revenue(orders), 2),
        "daily_revenue": round(_delivered_revenue(today), 2),
        "revenue_growth": _growth(_delivered_revenue(this_month), _delivered_revenue(last_month)),
        "order_growth": _growth(len(this_month), len(last_month)),
        "average_order_value": round(sum(float(o.get("total") or 0) for o in orders) / total, 2) if total else 0.0,
        "completion_rate": round(delivered / total * 100) if total else 0,
        "top_category": top_category(orders, products),
    }


def sales_series(orders: List[dict], now: datetime, days: int) -> dict:
    tz = now.tzinfo
    first_day = now.date() - timedelta(days=days - 1)
    buckets = {first_day + timedelta(days=n): {"revenue": 0.0, "orders": 0} for n in range(days)}
    for order in orders:
        created = _local_created(order, tz)
        if created is None or created.date() not in buckets:
            continue
        bucket = buckets[created.date()]
        bucket["orders"] += 1
        if order.get("status") == "delivered":
            bucket["revenue"] += float(order.get("total") or 0)

    series = [
        {"date": day.isoformat(), "revenue": round(b["revenue"], 2), "orders": b["orders"]}
        for day, b in buckets.items()
    ]
    return {
        "days": days,
        "series": series,
        "total_revenue": round(sum(d["revenue"] for d in series), 2),
        "total_orders": sum(d["orders"] for d in series),
    }

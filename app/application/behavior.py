"""
Payment behavior features - how each bill has been paid over recent months.

Feeds the assistant (nudges, habit coaching) with per-bill punctuality and
ordering stats plus a few month-level flags. Read-only.
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.application.instances import get_instances
from app.domain.ledger import STATUS_SKIPPED, compute_summary
from app.infrastructure.db.models import InstanceModel, PaymentEventModel

DEFAULT_WINDOW = 3


def month_index(year: int, month: int) -> int:
    return year * 12 + (month - 1)


def last_n_months(year: int, month: int, window: int) -> list[tuple[int, int]]:
    """(year, month) going backwards, the given month first"""
    months = []
    index = month_index(year, month)
    for i in range(window):
        y, m = divmod(index - i, 12)
        months.append((y, m + 1))
    return months


def _month_key(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def _ratio(numerator, denominator) -> float:
    return round(float(numerator) / float(denominator), 2) if denominator else 0.0


class BehaviorFeaturesService:
    def __init__(self, db: Session):
        self.db = db

    def compute(self, year: int, month: int, window: int = DEFAULT_WINDOW, today: date | None = None) -> dict:
        """
        Returns:
            {"global": {...}, "per_bill": [...]}

        per_bill stats per template:
            avg_pay_day_offset    mean days between due date and last payment (negative = early)
            on_time_rate          share of fully paid instances paid on/before the due date
            typical_payment_order_rank  mean position among the month's payments
            last_3_months_paid_flag     fully paid in each of the last three months
            payment_consistency_score   fully paid / total instances
            lateness_trend        share of fully paid instances paid late
            typical_pay_window_days     |avg offset|, None without payments
        """
        today = today or date.today()
        months = last_n_months(year, month, window)
        indices = [month_index(y, m) for y, m in months]
        row_index = InstanceModel.year * 12 + (InstanceModel.month - 1)

        instances = self.db.query(InstanceModel).filter(
            row_index >= min(indices),
            row_index <= max(indices),
        ).all()

        totals, last_dates = self._payment_stats([i.id for i in instances])

        stats = {}
        month_payments = defaultdict(list)
        for inst in instances:
            stat = stats.setdefault(inst.template_id, {
                "template_id": inst.template_id,
                "name": inst.name_snapshot,
                "category": inst.category_snapshot,
                "total": 0,
                "paid": 0,
                "on_time": 0,
                "late": 0,
                "offsets": [],
                "ranks": [],
                "paid_by_month": {},
            })
            stat["total"] += 1

            amount = Decimal(inst.amount)
            paid_total = totals.get(inst.id, Decimal("0"))
            last_paid = last_dates.get(inst.id)
            fully_paid = amount > 0 and paid_total >= amount
            key = _month_key(inst.year, inst.month)
            stat["paid_by_month"][key] = fully_paid

            if fully_paid and last_paid:
                stat["paid"] += 1
                offset = (last_paid - inst.due_date).days
                stat["offsets"].append(offset)
                if offset <= 0:
                    stat["on_time"] += 1
                else:
                    stat["late"] += 1

            if last_paid:
                month_payments[key].append((last_paid, inst.template_id))

        for entries in month_payments.values():
            entries.sort(key=lambda item: item[0])
            for rank, (_, template_id) in enumerate(entries, start=1):
                stats[template_id]["ranks"].append(rank)

        last_three = [_month_key(y, m) for y, m in last_n_months(year, month, 3)]
        per_bill = []
        for stat in stats.values():
            offsets = stat["offsets"]
            avg_offset = sum(offsets) / len(offsets) if offsets else 0
            ranks = stat["ranks"]
            per_bill.append({
                "template_id": stat["template_id"],
                "name": stat["name"],
                "category": stat["category"],
                "avg_pay_day_offset": round(avg_offset, 2),
                "on_time_rate": _ratio(stat["on_time"], stat["paid"]),
                "typical_payment_order_rank": round(sum(ranks) / len(ranks), 2) if ranks else None,
                "last_3_months_paid_flag": [stat["paid_by_month"].get(k, False) for k in last_three],
                "payment_consistency_score": _ratio(stat["paid"], stat["total"]),
                "lateness_trend": _ratio(stat["late"], stat["paid"]),
                "typical_pay_window_days": round(abs(avg_offset), 2) if offsets else None,
            })

        return {"global": self._global_flags(year, month, today), "per_bill": per_bill}

    def _payment_stats(self, instance_ids: list[str]) -> tuple[dict, dict]:
        if not instance_ids:
            return {}, {}
        rows = (
            self.db.query(
                PaymentEventModel.instance_id,
                func.sum(PaymentEventModel.amount),
                func.max(PaymentEventModel.paid_date),
            )
            .filter(PaymentEventModel.instance_id.in_(instance_ids))
            .group_by(PaymentEventModel.instance_id)
            .all()
        )
        totals = {iid: Decimal(str(total or 0)) for iid, total, _ in rows}
        last_dates = {iid: _as_date(last) for iid, _, last in rows if last}
        return totals, last_dates

    def _global_flags(self, year: int, month: int, today: date) -> dict:
        current = get_instances(self.db, year, month)
        essentials = [
            i for i in current
            if i.essential_snapshot and i.status_derived != STATUS_SKIPPED
        ]
        required = sum((i.amount for i in essentials), Decimal("0"))
        paid = sum((min(i.amount, i.amount_paid) for i in essentials), Decimal("0"))

        upcoming = sorted(
            (i.due_date - today).days for i in current
            if i.status_derived != STATUS_SKIPPED and i.amount_remaining > 0 and i.due_date >= today
        )
        summary = compute_summary(current, year, month, essentials_only=True, today=today)
        return {
            "percent_essentials_paid": _ratio(paid, required) if required else 0.0,
            "days_until_next_due": upcoming[0] if upcoming else None,
            "current_free_for_month_flag": summary.free_for_month,
        }


def _as_date(value) -> date:
    # MAX() over a Date column comes back as a plain string on SQLite
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])

"""
Dashboard Service

Aggregate sales and credit figures. Credit figures come from the ledger
(credit_sales / credit_payments), never from the sale totals, so the
dashboard always agrees with customer balances.

Period boundaries are computed in the shop's timezone and compared in UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.common.mixins import as_utc, utcnow
from app.core.config import settings
from app.modules.customers.models import Customer
from app.modules.dashboard.schemas import DashboardMetrics, ChartPoint, ChartResponse
from app.modules.ledger.models import CreditPayment
from app.modules.ledger.store import LedgerStore
from app.modules.products.models import Product
from app.modules.sales.models import Sale

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def month_start(day: date, months_back: int = 0) -> date:
    index = day.year * 12 + (day.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)


def growth_percentage(current: Decimal, previous: Decimal) -> float:
    if previous > 0:
        return round(float((current - previous) / previous * 100), 1)
    return 100.0 if current > 0 else 0.0


class DashboardService:
    def __init__(self, db: Session, now: Optional[datetime] = None):
        self.db = db
        self.tz = ZoneInfo(settings.SHOP_TIMEZONE)
        self.now = as_utc(now or utcnow()).astimezone(self.tz)

    def _local_midnight(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz).astimezone(timezone.utc)

    def _sum_sales(self, start: datetime, end: datetime, is_credit: Optional[bool] = None) -> Decimal:
        query = self.db.query(func.coalesce(func.sum(Sale.total), 0)).filter(
            Sale.sold_at >= start, Sale.sold_at < end
        )
        if is_credit is not None:
            query = query.filter(Sale.is_credit == is_credit)
        return Decimal(query.scalar() or 0).quantize(Decimal("0.01"))

    def _sum_payments(self, start: datetime, end: datetime) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(CreditPayment.amount), 0)).filter(
            CreditPayment.paid_at >= start, CreditPayment.paid_at < end
        ).scalar()
        return Decimal(total or 0).quantize(Decimal("0.01"))

    def get_metrics(self) -> DashboardMetrics:
        today = self.now.date()
        day_start = self._local_midnight(today)
        day_end = self._local_midnight(today + timedelta(days=1))
        week_start = self._local_midnight(today - timedelta(days=today.weekday()))
        this_month = self._local_midnight(month_start(today))
        last_month = self._local_midnight(month_start(today, 1))
        next_month = self._local_midnight(month_start(today, -1))

        sales_month = self._sum_sales(this_month, next_month)
        sales_last_month = self._sum_sales(last_month, this_month)

        metrics = DashboardMetrics(
            sales_today=self._sum_sales(day_start, day_end),
            sales_week=self._sum_sales(week_start, day_end),
            sales_month=sales_month,
            sales_last_month=sales_last_month,
            month_growth=growth_percentage(sales_month, sales_last_month),
            cash_sales_today=self._sum_sales(day_start, day_end, is_credit=False),
            credit_sales_today=self._sum_sales(day_start, day_end, is_credit=True),
            credit_paid_today=self._sum_payments(day_start, day_end),
            credit_outstanding=LedgerStore(self.db).total_outstanding(),
            low_stock_count=self.db.query(func.count(Product.id)).filter(
                Product.stock_quantity <= Product.min_stock
            ).scalar() or 0,
            customer_count=self.db.query(func.count(Customer.id)).scalar() or 0,
            product_count=self.db.query(func.count(Product.id)).scalar() or 0,
        )
        logger.debug(f"Dashboard metrics computed for {today}")
        return metrics

    def get_chart(self, months: int = 6) -> ChartResponse:
        """Monthly cash sales, credit sales and credit payments, oldest month first."""
        today = self.now.date()
        starts = [month_start(today, back) for back in range(months - 1, -1, -1)]
        range_start = self._local_midnight(starts[0])

        buckets: Dict[Tuple[int, int], Dict[str, Decimal]] = {
            (s.year, s.month): {"cash_sales": ZERO, "credit_sales": ZERO, "credit_paid": ZERO}
            for s in starts
        }

        def bucket_for(moment: datetime):
            local = as_utc(moment).astimezone(self.tz)
            return buckets.get((local.year, local.month))

        sales = self.db.query(Sale.sold_at, Sale.total, Sale.is_credit).filter(
            Sale.sold_at >= range_start
        ).all()
        for sold_at, total, is_credit in sales:
            bucket = bucket_for(sold_at)
            if bucket is not None:
                bucket["credit_sales" if is_credit else "cash_sales"] += Decimal(total)

        payments = self.db.query(CreditPayment.paid_at, CreditPayment.amount).filter(
            CreditPayment.paid_at >= range_start
        ).all()
        for paid_at, amount in payments:
            bucket = bucket_for(paid_at)
            if bucket is not None:
                bucket["credit_paid"] += Decimal(amount)

        chart_data: List[ChartPoint] = []
        for s in starts:
            values = buckets[(s.year, s.month)]
            chart_data.append(ChartPoint(
                month=f"{s.year:04d}-{s.month:02d}",
                month_start=s,
                **{k: v.quantize(Decimal("0.01")) for k, v in values.items()}
            ))
        return ChartResponse(months=months, chart_data=chart_data)

from pydantic import BaseModel
from decimal import Decimal
from typing import List
from datetime import date


class DashboardMetrics(BaseModel):
    sales_today: Decimal
    sales_week: Decimal
    sales_month: Decimal
    sales_last_month: Decimal
    month_growth: float  # Porcentaje con un decimal
    cash_sales_today: Decimal
    credit_sales_today: Decimal
    credit_paid_today: Decimal
    credit_outstanding: Decimal
    low_stock_count: int
    customer_count: int
    product_count: int


class ChartPoint(BaseModel):
    month: str  # YYYY-MM
    month_start: date
    cash_sales: Decimal
    credit_sales: Decimal
    credit_paid: Decimal


class ChartResponse(BaseModel):
    months: int
    chart_data: List[ChartPoint]

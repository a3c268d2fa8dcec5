from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
from typing import List, Optional

import pandas as pd

from config.constants import BREAKDOWN_COLUMNS, InterestType, PlanStatus
from core.inflation import inflation_factor
from utils.date_utils import add_months, parse_date, parse_datetime, whole_months_between
from utils.id_generator import generate_breakdown_id, generate_plan_id


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    if value is None or pd.isna(value):
        return False
    return bool(value)


def _to_float(value) -> float:
    if value is None or pd.isna(value):
        return 0.0
    return float(value)


def _to_str(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value)


@dataclass(frozen=True)
class FinancialPlan:
    name: str
    start_date: date
    duration_in_months: int
    monthly_income: float
    default_currency: str
    manual_monthly_expenses: float = 0.0
    use_app_expense_data: bool = False
    is_inflation_applied: bool = False
    inflation_rate: float = 0.0
    is_interest_applied: bool = False
    interest_rate: float = 0.0
    interest_type: InterestType = InterestType.COMPOUND
    id: str = field(default_factory=generate_plan_id)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def end_date(self) -> date:
        return add_months(self.start_date, self.duration_in_months)

    def month_start(self, month_index: int) -> date:
        return add_months(self.start_date, month_index)

    def is_active(self, today: Optional[date] = None) -> bool:
        today = today or date.today()
        return self.start_date < today < self.end_date()

    def months_elapsed(self, today: Optional[date] = None) -> int:
        """已经历的月数，当前未满的月份也计入"""
        today = today or date.today()
        if today < self.start_date:
            return 0
        if today > self.end_date():
            return self.duration_in_months
        return min(whole_months_between(self.start_date, today) + 1, self.duration_in_months)

    def progress_percentage(self, today: Optional[date] = None) -> float:
        return self.months_elapsed(today) / self.duration_in_months

    def status(self, today: Optional[date] = None) -> PlanStatus:
        today = today or date.today()
        if today <= self.start_date:
            return PlanStatus.UPCOMING
        if today >= self.end_date():
            return PlanStatus.COMPLETED
        return PlanStatus.ACTIVE

    def inflation_applies(self) -> bool:
        return self.is_inflation_applied and self.inflation_rate > 0

    def monthly_income_at_month(self, month_index: int) -> float:
        if self.inflation_applies():
            return self.monthly_income * inflation_factor(self.inflation_rate, month_index)
        return self.monthly_income

    def total_expected_income(self) -> float:
        if self.inflation_applies():
            return sum(self.monthly_income_at_month(m) for m in range(self.duration_in_months))
        return self.monthly_income * self.duration_in_months

    def to_row(self) -> dict:
        return {
            "plan_id": self.id,
            "plan_name": self.name,
            "start_date": self.start_date.isoformat(),
            "duration_in_months": self.duration_in_months,
            "monthly_income": self.monthly_income,
            "manual_monthly_expenses": self.manual_monthly_expenses,
            "use_app_expense_data": self.use_app_expense_data,
            "is_inflation_applied": self.is_inflation_applied,
            "inflation_rate": self.inflation_rate,
            "is_interest_applied": self.is_interest_applied,
            "interest_rate": self.interest_rate,
            "interest_type": self.interest_type.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "default_currency": self.default_currency,
        }

    @classmethod
    def from_row(cls, row) -> "FinancialPlan":
        now = datetime.now()
        interest_type = _to_str(row.get("interest_type")) or InterestType.COMPOUND.value
        return cls(
            id=_to_str(row["plan_id"]),
            name=_to_str(row.get("plan_name")),
            start_date=parse_date(row.get("start_date")),
            duration_in_months=int(row.get("duration_in_months")),
            monthly_income=_to_float(row.get("monthly_income")),
            manual_monthly_expenses=_to_float(row.get("manual_monthly_expenses")),
            use_app_expense_data=_to_bool(row.get("use_app_expense_data")),
            is_inflation_applied=_to_bool(row.get("is_inflation_applied")),
            inflation_rate=_to_float(row.get("inflation_rate")),
            is_interest_applied=_to_bool(row.get("is_interest_applied")),
            interest_rate=_to_float(row.get("interest_rate")),
            interest_type=InterestType(interest_type.lower()),
            created_at=parse_datetime(row.get("created_at")) or now,
            updated_at=parse_datetime(row.get("updated_at")) or now,
            default_currency=_to_str(row.get("default_currency")),
        )


@dataclass(frozen=True)
class PlanMonthlyBreakdown:
    plan_id: str
    month_index: int
    projected_income: float
    fixed_expenses: float
    average_expenses: float
    total_projected_expenses: float
    net_amount: float
    interest_earned: float = 0.0
    cumulative_net: float = 0.0
    is_manual_override: bool = False
    id: str = field(default_factory=generate_breakdown_id)

    def savings_rate(self) -> float:
        if self.projected_income > 0:
            return self.net_amount / self.projected_income
        return 0.0

    def expense_ratio(self) -> float:
        if self.projected_income > 0:
            return self.total_projected_expenses / self.projected_income
        return 0.0

    def to_row(self) -> dict:
        row = asdict(self)
        row["breakdown_id"] = row.pop("id")
        return {col: row[col] for col in BREAKDOWN_COLUMNS}

    @classmethod
    def from_row(cls, row) -> "PlanMonthlyBreakdown":
        return cls(
            id=_to_str(row["breakdown_id"]),
            plan_id=_to_str(row["plan_id"]),
            month_index=int(row["month_index"]),
            projected_income=_to_float(row.get("projected_income")),
            fixed_expenses=_to_float(row.get("fixed_expenses")),
            average_expenses=_to_float(row.get("average_expenses")),
            total_projected_expenses=_to_float(row.get("total_projected_expenses")),
            net_amount=_to_float(row.get("net_amount")),
            interest_earned=_to_float(row.get("interest_earned")),
            cumulative_net=_to_float(row.get("cumulative_net")),
            is_manual_override=_to_bool(row.get("is_manual_override")),
        )


def apply_edit(breakdown: PlanMonthlyBreakdown, **changes) -> PlanMonthlyBreakdown:
    """
    生成人工修改后的月度明细。

    只改了固定/平均支出时自动重算总支出；未显式给出 net_amount 时按
    收入 - 总支出 重算。结果标记为人工修改。
    """
    if "id" in changes or "plan_id" in changes or "month_index" in changes:
        raise ValueError("不能修改月度明细的标识字段")

    edited = replace(breakdown, **changes)
    if ("fixed_expenses" in changes or "average_expenses" in changes) \
            and "total_projected_expenses" not in changes:
        edited = replace(
            edited,
            total_projected_expenses=edited.fixed_expenses + edited.average_expenses,
        )
    if "net_amount" not in changes:
        edited = replace(
            edited,
            net_amount=edited.projected_income - edited.total_projected_expenses,
        )
    return replace(edited, is_manual_override=True)


@dataclass(frozen=True)
class ExpenseFigures:
    fixed_expenses: float = 0.0
    average_expenses: float = 0.0

    @property
    def total(self) -> float:
        return self.fixed_expenses + self.average_expenses


@dataclass(frozen=True)
class PlanWithBreakdowns:
    plan: FinancialPlan
    breakdowns: List[PlanMonthlyBreakdown]

    def breakdown_for(self, month_index: int) -> Optional[PlanMonthlyBreakdown]:
        for b in self.breakdowns:
            if b.month_index == month_index:
                return b
        return None

    def final_cumulative_net(self) -> float:
        return self.breakdowns[-1].cumulative_net if self.breakdowns else 0.0

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([b.to_row() for b in self.breakdowns], columns=BREAKDOWN_COLUMNS)


@dataclass(frozen=True)
class PlanCurrentPosition:
    plan_id: str
    current_month_index: int
    months_elapsed: int
    progress: float
    expected_cumulative_net: float
    actual_cumulative_net: float
    variance: float
    is_on_track: bool

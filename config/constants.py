from enum import Enum


class InterestType(str, Enum):
    SIMPLE = "simple"
    COMPOUND = "compound"

    @property
    def label(self) -> str:
        return {
            "simple": "单利",
            "compound": "复利",
        }[self.value]


class RecurrenceType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PlanStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"

    @property
    def label(self) -> str:
        return {
            "upcoming": "未开始",
            "active": "进行中",
            "completed": "已结束",
        }[self.value]


# Sheet 名称
SHEET_PLANS = "财务计划"
SHEET_BREAKDOWNS = "月度明细"
SHEET_EXPENSES = "支出记录"
SHEET_CONFIG = "系统配置"

# 列定义
PLANS_COLUMNS = [
    "plan_id", "plan_name", "start_date", "duration_in_months",
    "monthly_income", "manual_monthly_expenses", "use_app_expense_data",
    "is_inflation_applied", "inflation_rate",
    "is_interest_applied", "interest_rate", "interest_type",
    "created_at", "updated_at", "default_currency",
]

BREAKDOWN_COLUMNS = [
    "breakdown_id", "plan_id", "month_index",
    "projected_income", "fixed_expenses", "average_expenses",
    "total_projected_expenses", "net_amount",
    "interest_earned", "cumulative_net", "is_manual_override",
]

# 金额列（用于取整、通胀折算）
BREAKDOWN_AMOUNT_COLUMNS = [
    "projected_income", "fixed_expenses", "average_expenses",
    "total_projected_expenses", "net_amount",
    "interest_earned", "cumulative_net",
]

EXPENSES_COLUMNS = [
    "expense_id", "expense_date", "amount", "currency",
    "recurrence_type", "category", "description",
]

CONFIG_COLUMNS = ["key", "value", "description", "updated_at"]

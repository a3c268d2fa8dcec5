import math
from datetime import date
from typing import Optional, Tuple

from config.constants import InterestType
from config.settings import MAX_DURATION_MONTHS


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_financial_plan(
    name: str,
    start_date: Optional[date],
    duration_in_months,
    monthly_income,
    manual_monthly_expenses=0.0,
    use_app_expense_data: bool = False,
    is_inflation_applied: bool = False,
    inflation_rate=None,
    is_interest_applied: bool = False,
    interest_rate=None,
    interest_type=InterestType.COMPOUND.value,
    default_currency: str = "",
) -> Tuple[bool, str]:
    """校验财务计划输入，返回 (是否合法, 第一条错误信息)"""
    if not name or not name.strip():
        return False, "计划名称不能为空"

    if not _is_number(monthly_income) or monthly_income < 0:
        return False, "月收入不能为负数"

    if isinstance(duration_in_months, bool) or not isinstance(duration_in_months, int):
        return False, "计划期限必须是整数月"
    if duration_in_months < 1:
        return False, "计划期限至少为1个月"
    if duration_in_months > MAX_DURATION_MONTHS:
        return False, f"计划期限不能超过{MAX_DURATION_MONTHS}个月"

    if is_inflation_applied:
        if inflation_rate is None or not _is_number(inflation_rate):
            return False, "启用通胀时必须填写通胀率"
        if inflation_rate < 0 or inflation_rate > 1:
            return False, "通胀率必须在0-1之间（月度小数）"

    if start_date is None or not isinstance(start_date, date):
        return False, "起始日期无效"

    if not use_app_expense_data:
        if not _is_number(manual_monthly_expenses) or manual_monthly_expenses < 0:
            return False, "手动月支出不能为负数"

    if is_interest_applied:
        if interest_rate is None or not _is_number(interest_rate):
            return False, "启用利息时必须填写利率"
        if interest_rate < 0 or interest_rate > 1:
            return False, "利率必须在0-1之间（月度小数）"
        if interest_type not in [e.value for e in InterestType]:
            return False, f"无效的计息方式: {interest_type}"

    if not default_currency or not default_currency.strip():
        return False, "币种不能为空"

    return True, ""


def validate_breakdown_edit(
    projected_income,
    fixed_expenses,
    average_expenses,
    total_projected_expenses,
    net_amount,
) -> Tuple[bool, str]:
    """校验人工修改后的月度明细"""
    for label, value in [
        ("预计收入", projected_income),
        ("固定支出", fixed_expenses),
        ("平均支出", average_expenses),
        ("总支出", total_projected_expenses),
        ("结余", net_amount),
    ]:
        if not _is_number(value):
            return False, f"{label}必须是有效数字"

    if projected_income < 0:
        return False, "预计收入不能为负数"

    if fixed_expenses < 0 or average_expenses < 0 or total_projected_expenses < 0:
        return False, "支出不能为负数"

    return True, ""

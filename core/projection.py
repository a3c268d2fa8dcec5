"""
月度预测引擎

根据财务计划参数（以及使用 App 支出数据时外部提供的每月支出）逐月生成
收入、支出、结余、利息和累计结余。利息按上月末累计结余计提，累计结余满足

    cumulative_net[i] = cumulative_net[i-1] + net_amount[i] + interest_earned[i]
"""
import logging
from dataclasses import replace
from typing import List, Optional, Sequence

import pandas as pd

from config.constants import BREAKDOWN_AMOUNT_COLUMNS, BREAKDOWN_COLUMNS, InterestType
from config.settings import AMOUNT_PRECISION
from core.inflation import inflation_factors
from data_manager.schema import ExpenseFigures, FinancialPlan, PlanMonthlyBreakdown

logger = logging.getLogger(__name__)


def calc_interest(prior_balance: float, monthly_rate: float, interest_type) -> float:
    """按上月末累计结余计算本月利息（余额为负时利息也为负）"""
    interest_type = InterestType(interest_type)
    if interest_type == InterestType.SIMPLE:
        return prior_balance * monthly_rate
    elif interest_type == InterestType.COMPOUND:
        # 余额已包含此前的利息，逐月滚存即为复利
        return prior_balance * ((1 + monthly_rate) - 1)
    raise ValueError(f"未处理的计息方式: {interest_type}")


def interest_for_month(plan: FinancialPlan, prior_balance: float) -> float:
    if not plan.is_interest_applied:
        return 0.0
    return calc_interest(prior_balance, plan.interest_rate, plan.interest_type)


def chain_cumulative(
    plan: FinancialPlan,
    breakdowns: Sequence[PlanMonthlyBreakdown],
    start_balance: float = 0.0,
) -> List[PlanMonthlyBreakdown]:
    """
    从 start_balance 开始依次重算利息和累计结余。

    收入、支出、结余保持不变，breakdowns 须已按 month_index 排序且连续。
    """
    balance = start_balance
    chained = []
    for b in breakdowns:
        interest = interest_for_month(plan, balance)
        balance = balance + b.net_amount + interest
        chained.append(replace(b, interest_earned=interest, cumulative_net=balance))
    return chained


def base_breakdowns(
    plan: FinancialPlan,
    expense_figures: Optional[Sequence[ExpenseFigures]] = None,
) -> List[PlanMonthlyBreakdown]:
    """生成尚未计息、未累计的逐月收支"""
    n_months = plan.duration_in_months
    if plan.use_app_expense_data:
        if expense_figures is None:
            raise ValueError("使用 App 支出数据的计划必须提供每月支出")
        if len(expense_figures) != n_months:
            raise ValueError(f"每月支出数量 {len(expense_figures)} 与计划期限 {n_months} 不一致")

    rate = plan.inflation_rate if plan.inflation_applies() else 0.0
    factors = inflation_factors(rate, n_months)

    manual = ExpenseFigures(fixed_expenses=plan.manual_monthly_expenses)

    rows = []
    for m in range(n_months):
        factor = float(factors[m])
        figures = expense_figures[m] if plan.use_app_expense_data else manual
        fixed = figures.fixed_expenses * factor
        average = figures.average_expenses * factor
        total = figures.total * factor
        income = plan.monthly_income_at_month(m)
        rows.append(PlanMonthlyBreakdown(
            plan_id=plan.id,
            month_index=m,
            projected_income=income,
            fixed_expenses=fixed,
            average_expenses=average,
            total_projected_expenses=total,
            net_amount=income - total,
        ))
    return rows


def generate_breakdowns(
    plan: FinancialPlan,
    expense_figures: Optional[Sequence[ExpenseFigures]] = None,
) -> List[PlanMonthlyBreakdown]:
    """生成计划全部期限的月度明细（month_index 0 .. duration-1）"""
    breakdowns = chain_cumulative(plan, base_breakdowns(plan, expense_figures), 0.0)
    logger.debug(
        "Projected %d months for plan %s, final cumulative %.2f",
        len(breakdowns), plan.id, breakdowns[-1].cumulative_net,
    )
    return breakdowns


def breakdowns_to_frame(plan: FinancialPlan, breakdowns: Sequence[PlanMonthlyBreakdown]) -> pd.DataFrame:
    """月度明细转为展示用 DataFrame（含月份标签，金额取两位小数）"""
    df = pd.DataFrame([b.to_row() for b in breakdowns], columns=BREAKDOWN_COLUMNS)
    df.insert(3, "month", [plan.month_start(int(m)).strftime("%Y-%m") for m in df["month_index"]])
    df[BREAKDOWN_AMOUNT_COLUMNS] = df[BREAKDOWN_AMOUNT_COLUMNS].astype(float).round(AMOUNT_PRECISION)
    return df


def project_plan_frame(
    plan: FinancialPlan,
    expense_figures: Optional[Sequence[ExpenseFigures]] = None,
) -> pd.DataFrame:
    """只做预测不落库，用于预览"""
    return breakdowns_to_frame(plan, generate_breakdowns(plan, expense_figures))

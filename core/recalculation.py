"""
月度明细重算

人工修改某月后，从该月起向后重算利息与累计结余；之前的月份保持不变。
用 App 支出数据刷新计划时，按冲突策略保留已过月份和人工修改过的月份。
"""
import logging
from dataclasses import replace
from datetime import date
from typing import List, Optional, Sequence

from core.errors import NotFoundError, PersistenceError
from core.projection import base_breakdowns, chain_cumulative
from data_manager.schema import ExpenseFigures, FinancialPlan, PlanMonthlyBreakdown

logger = logging.getLogger(__name__)


def _predecessor_balance(ordered: Sequence[PlanMonthlyBreakdown], month_index: int) -> float:
    if month_index == 0:
        return 0.0
    for b in ordered:
        if b.month_index == month_index - 1:
            return b.cumulative_net
    raise NotFoundError("月度明细", f"第 {month_index - 1} 月")


def recalculate_from(
    plan: FinancialPlan,
    breakdowns: Sequence[PlanMonthlyBreakdown],
    edited: PlanMonthlyBreakdown,
) -> List[PlanMonthlyBreakdown]:
    """
    返回从被修改月份到最后一个月的重算结果。

    被修改月份的收入、支出、结余以 edited 为准，之后的月份沿用已存值，
    利息与累计结余从上一月已存的累计结余开始重新滚算。
    """
    if edited.plan_id != plan.id:
        raise ValueError(f"月度明细不属于计划 {plan.id}")

    ordered = sorted(breakdowns, key=lambda b: b.month_index)
    stored = next((b for b in ordered if b.month_index == edited.month_index), None)
    if stored is None or stored.id != edited.id:
        raise NotFoundError("月度明细", edited.id)

    start_balance = _predecessor_balance(ordered, edited.month_index)
    suffix = [edited] + [b for b in ordered if b.month_index > edited.month_index]
    return chain_cumulative(plan, suffix, start_balance)


def recalculate_breakdowns(store, plan: FinancialPlan, edited: PlanMonthlyBreakdown) -> List[PlanMonthlyBreakdown]:
    """
    重算并逐条写回。

    某条写入失败时抛出 PersistenceError，已写入的月份保留；
    由于总是从上一月已存的累计结余开始，整体重跑即可恢复一致。
    """
    breakdowns = store.fetch_breakdowns(plan.id)
    current = {b.month_index: b for b in breakdowns}
    updated = recalculate_from(plan, breakdowns, edited)

    written = 0
    for b in updated:
        if b.month_index != edited.month_index and current.get(b.month_index) == b:
            continue
        try:
            store.update_breakdown(b)
        except PersistenceError as exc:
            logger.error(
                "Recalculation of plan %s stopped at month %d after %d writes",
                plan.id, b.month_index, written,
            )
            raise PersistenceError(
                f"计划 {plan.id} 重算在第 {b.month_index} 月中断，请重试"
            ) from exc
        written += 1
        logger.debug("Recalculated plan %s month %d: cumulative %.2f", plan.id, b.month_index, b.cumulative_net)

    logger.info("Recalculated plan %s from month %d (%d writes)", plan.id, edited.month_index, written)
    return updated


def refresh_breakdowns(
    plan: FinancialPlan,
    breakdowns: Sequence[PlanMonthlyBreakdown],
    expense_figures: Sequence[ExpenseFigures],
    today: Optional[date] = None,
) -> List[PlanMonthlyBreakdown]:
    """
    用最新支出数据刷新月度明细，返回完整序列。

    已过月份（含当前月）和人工修改过的月份保留收支；其余月份换成新的支出，
    并从第一个被刷新的月份起重算利息与累计结余。
    """
    elapsed = plan.months_elapsed(today)
    fresh = base_breakdowns(plan, expense_figures)
    existing = {b.month_index: b for b in breakdowns}

    merged = []
    first_refreshed = None
    for m in range(plan.duration_in_months):
        current = existing.get(m)
        if current is not None and (m < elapsed or current.is_manual_override):
            merged.append(current)
            continue
        new = fresh[m]
        if current is not None:
            new = replace(
                current,
                projected_income=new.projected_income,
                fixed_expenses=new.fixed_expenses,
                average_expenses=new.average_expenses,
                total_projected_expenses=new.total_projected_expenses,
                net_amount=new.net_amount,
            )
        merged.append(new)
        if first_refreshed is None:
            first_refreshed = m

    if first_refreshed is None:
        return merged

    start_balance = merged[first_refreshed - 1].cumulative_net if first_refreshed > 0 else 0.0
    return merged[:first_refreshed] + chain_cumulative(plan, merged[first_refreshed:], start_balance)

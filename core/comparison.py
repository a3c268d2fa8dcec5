"""计划汇总与对比"""
from typing import Dict, List

import pandas as pd

from data_manager.schema import PlanWithBreakdowns


def summarize_plan(pwb: PlanWithBreakdowns) -> Dict:
    """单个计划的关键指标"""
    plan = pwb.plan
    df = pwb.to_frame()
    if df.empty:
        return {
            "plan_id": plan.id,
            "plan_name": plan.name,
            "months": plan.duration_in_months,
            "total_income": 0.0,
            "total_expenses": 0.0,
            "total_net": 0.0,
            "total_interest": 0.0,
            "final_cumulative_net": 0.0,
            "avg_savings_rate": 0.0,
            "lowest_cumulative_net": 0.0,
            "lowest_month_index": None,
            "manual_months": 0,
        }

    total_income = float(df["projected_income"].sum())
    total_net = float(df["net_amount"].sum())
    lowest = df.loc[df["cumulative_net"].astype(float).idxmin()]

    return {
        "plan_id": plan.id,
        "plan_name": plan.name,
        "months": plan.duration_in_months,
        "total_income": round(total_income, 2),
        "total_expenses": round(float(df["total_projected_expenses"].sum()), 2),
        "total_net": round(total_net, 2),
        "total_interest": round(float(df["interest_earned"].sum()), 2),
        "final_cumulative_net": round(pwb.final_cumulative_net(), 2),
        "avg_savings_rate": round(total_net / total_income, 4) if total_income > 0 else 0.0,
        "lowest_cumulative_net": round(float(lowest["cumulative_net"]), 2),
        "lowest_month_index": int(lowest["month_index"]),
        "manual_months": int(df["is_manual_override"].astype(bool).sum()),
    }


def compare_plans(plans: List[PlanWithBreakdowns]) -> pd.DataFrame:
    """
    对比多个计划的关键指标。
    返回对比表 DataFrame，每个计划一行。
    """
    rows = []
    for pwb in plans:
        summary = summarize_plan(pwb)
        rows.append({
            "计划名称": summary["plan_name"],
            "期限(月)": summary["months"],
            "币种": pwb.plan.default_currency,
            "总收入": summary["total_income"],
            "总支出": summary["total_expenses"],
            "总利息": summary["total_interest"],
            "期末累计结余": summary["final_cumulative_net"],
            "平均储蓄率(%)": round(summary["avg_savings_rate"] * 100, 2),
            "人工修改月数": summary["manual_months"],
        })

    return pd.DataFrame(rows)

"""
支出数据来源

根据用户记录的支出，为使用 App 支出数据的计划提供每月的固定支出（周期性支出）
和平均支出（近几个月一次性支出的月均值），以及某段时间内的实际支出合计。
不同币种之间不做换算，只统计与计划币种相同的记录。
"""
import logging
from datetime import date
from pathlib import Path
from typing import List, Optional

import pandas as pd

from config.constants import EXPENSES_COLUMNS, RecurrenceType
from config.settings import AVERAGE_LOOKBACK_MONTHS, EXCEL_FILE
from data_manager import excel_handler
from data_manager.plan_store import storage_errors
from data_manager.schema import ExpenseFigures, FinancialPlan
from utils.date_utils import add_months, month_bounds

logger = logging.getLogger(__name__)


class ExpenseSource:
    """基于支出记录 DataFrame 的支出统计"""

    def __init__(self, expenses: Optional[pd.DataFrame] = None,
                 lookback_months: int = AVERAGE_LOOKBACK_MONTHS):
        self._expenses = expenses if expenses is not None else pd.DataFrame(columns=EXPENSES_COLUMNS)
        self.lookback_months = lookback_months

    def load_expenses(self) -> pd.DataFrame:
        return self._expenses

    def _expenses_in(self, currency: str) -> pd.DataFrame:
        df = self.load_expenses()
        if df.empty:
            return pd.DataFrame(columns=EXPENSES_COLUMNS + ["expense_dt"])
        df = df[df["currency"].astype(str).str.upper() == currency.upper()].copy()
        df["expense_dt"] = pd.to_datetime(df["expense_date"]).dt.date
        df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0)
        df["recurrence_type"] = df["recurrence_type"].fillna(RecurrenceType.NONE.value).astype(str).str.lower()
        return df

    def _average_one_time(self, df: pd.DataFrame, today: date) -> float:
        window_start = add_months(today, -self.lookback_months)
        one_time = df[
            (df["recurrence_type"] == RecurrenceType.NONE.value)
            & (df["expense_dt"] > window_start)
            & (df["expense_dt"] < today)
        ]
        return float(one_time["amount"].sum()) / self.lookback_months

    @staticmethod
    def _recurring_for_month(df: pd.DataFrame, month_start: date) -> float:
        first_day, last_day = month_bounds(month_start)
        window_start = add_months(first_day, -1)
        recurring = df[
            (df["recurrence_type"] != RecurrenceType.NONE.value)
            & (df["expense_dt"] >= window_start)
            & (df["expense_dt"] <= last_day)
        ]
        return float(recurring["amount"].sum())

    def figures_for_month(self, currency: str, month_start: date,
                          today: Optional[date] = None) -> ExpenseFigures:
        today = today or date.today()
        df = self._expenses_in(currency)
        return ExpenseFigures(
            fixed_expenses=self._recurring_for_month(df, month_start),
            average_expenses=self._average_one_time(df, today),
        )

    def figures_for_plan(self, plan: FinancialPlan, today: Optional[date] = None) -> List[ExpenseFigures]:
        """为计划的每个月计算支出，顺序与 month_index 一致"""
        today = today or date.today()
        # 只读取一次支出记录，逐月查询
        snapshot = ExpenseSource(self.load_expenses(), self.lookback_months)
        figures = [
            snapshot.figures_for_month(plan.default_currency, plan.month_start(m), today)
            for m in range(plan.duration_in_months)
        ]
        logger.debug("Derived expense figures for plan %s (%d months)", plan.id, len(figures))
        return figures

    def actual_expenses(self, currency: str, start: date, end: date) -> float:
        """start 与 end 之间（不含端点）的实际支出合计"""
        df = self._expenses_in(currency)
        spent = df[(df["expense_dt"] > start) & (df["expense_dt"] < end)]
        return float(spent["amount"].sum())


class ExcelExpenseSource(ExpenseSource):
    """每次查询时从工作簿的支出记录 Sheet 读取"""

    def __init__(self, filepath: Path = EXCEL_FILE,
                 lookback_months: int = AVERAGE_LOOKBACK_MONTHS):
        super().__init__(lookback_months=lookback_months)
        self.filepath = Path(filepath)

    def load_expenses(self) -> pd.DataFrame:
        with storage_errors("读取支出记录"):
            return excel_handler.get_expenses(self.filepath)

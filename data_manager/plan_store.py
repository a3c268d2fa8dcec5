"""
计划存储

在 excel_handler 之上提供以 dataclass 为单位的读写接口，供计划协调器注入使用。
所有底层读写异常统一转换为 PersistenceError。
"""
import logging
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from openpyxl.utils.exceptions import InvalidFileException

from config.settings import EXCEL_FILE
from core.errors import NotFoundError, PersistenceError
from data_manager import excel_handler
from data_manager.schema import FinancialPlan, PlanMonthlyBreakdown

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (OSError, ValueError, KeyError, InvalidFileException, zipfile.BadZipFile)


@contextmanager
def storage_errors(action: str):
    try:
        yield
    except _STORAGE_ERRORS as exc:
        logger.warning("Storage failure while %s: %s", action, exc)
        raise PersistenceError(f"{action}失败: {exc}") from exc


class PlanStore:
    """基于 Excel 工作簿的计划与月度明细存储"""

    def __init__(self, filepath: Path = EXCEL_FILE):
        self.filepath = Path(filepath)

    # ---- 计划 ----

    def fetch_all_plans(self) -> List[FinancialPlan]:
        """按 updated_at 倒序返回所有计划"""
        with storage_errors("读取计划列表"):
            df = excel_handler.get_all_plans(self.filepath)
            plans = [FinancialPlan.from_row(row) for row in df.to_dict("records")]
        return sorted(plans, key=lambda p: p.updated_at, reverse=True)

    def fetch_plan(self, plan_id: str) -> Optional[FinancialPlan]:
        with storage_errors(f"读取计划 {plan_id}"):
            row = excel_handler.get_plan_by_id(plan_id, self.filepath)
            if row is None:
                return None
            return FinancialPlan.from_row(row.to_dict())

    def insert_plan(self, plan: FinancialPlan):
        with storage_errors(f"保存计划 {plan.id}"):
            excel_handler.save_plan(plan.to_row(), self.filepath)

    def update_plan(self, plan: FinancialPlan):
        if self.fetch_plan(plan.id) is None:
            raise NotFoundError("计划", plan.id)
        with storage_errors(f"更新计划 {plan.id}"):
            excel_handler.save_plan(plan.to_row(), self.filepath)

    def insert_plan_with_breakdowns(self, plan: FinancialPlan, breakdowns: List[PlanMonthlyBreakdown]):
        """计划与全部月度明细一起写入，失败时两者都不保留"""
        with storage_errors(f"保存计划 {plan.id} 及月度明细"):
            excel_handler.save_plan_with_breakdowns(
                plan.to_row(), [b.to_row() for b in breakdowns], self.filepath,
            )

    def replace_plan_with_breakdowns(self, plan: FinancialPlan, breakdowns: List[PlanMonthlyBreakdown]):
        """覆盖已有计划并整体替换其月度明细"""
        if self.fetch_plan(plan.id) is None:
            raise NotFoundError("计划", plan.id)
        with storage_errors(f"替换计划 {plan.id} 及月度明细"):
            excel_handler.save_plan_with_breakdowns(
                plan.to_row(), [b.to_row() for b in breakdowns], self.filepath,
            )

    def delete_plan(self, plan_id: str) -> bool:
        """删除计划及其月度明细，返回计划是否存在"""
        if self.fetch_plan(plan_id) is None:
            return False
        with storage_errors(f"删除计划 {plan_id}"):
            excel_handler.delete_plan(plan_id, self.filepath)
        return True

    # ---- 月度明细 ----

    def fetch_breakdowns(self, plan_id: str) -> List[PlanMonthlyBreakdown]:
        with storage_errors(f"读取计划 {plan_id} 的月度明细"):
            df = excel_handler.get_plan_breakdowns(plan_id, self.filepath)
            return [PlanMonthlyBreakdown.from_row(row) for row in df.to_dict("records")]

    def insert_breakdowns(self, breakdowns: List[PlanMonthlyBreakdown]):
        with storage_errors("保存月度明细"):
            excel_handler.insert_breakdowns([b.to_row() for b in breakdowns], self.filepath)

    def replace_breakdowns(self, plan_id: str, breakdowns: List[PlanMonthlyBreakdown]):
        with storage_errors(f"替换计划 {plan_id} 的月度明细"):
            excel_handler.save_plan_breakdowns(
                plan_id, [b.to_row() for b in breakdowns], self.filepath,
            )

    def update_breakdown(self, breakdown: PlanMonthlyBreakdown):
        with storage_errors(f"更新第 {breakdown.month_index} 月明细"):
            found = excel_handler.update_breakdown(breakdown.to_row(), self.filepath)
        if not found:
            raise NotFoundError("月度明细", breakdown.id)

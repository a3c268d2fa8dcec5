"""
计划生命周期协调器

负责计划的创建、选择、删除、月度明细修改和支出数据刷新。存储与支出数据来源
通过构造参数注入；阻塞的读写放到线程中执行，对调用方表现为协程。
同一计划上的操作通过该计划的锁串行执行，不同计划互不影响。
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import fields, replace
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Set

from config.constants import InterestType
from config.settings import DEFAULT_CURRENCY, ON_TRACK_THRESHOLD
from core.errors import NotFoundError, PlanningError, ValidationError
from core.projection import generate_breakdowns
from core.recalculation import recalculate_breakdowns, refresh_breakdowns
from data_manager.data_validator import validate_breakdown_edit, validate_financial_plan
from data_manager.schema import (
    FinancialPlan,
    PlanCurrentPosition,
    PlanMonthlyBreakdown,
    PlanWithBreakdowns,
)

logger = logging.getLogger(__name__)

# 可由调用方设置的计划参数
PLAN_PARAMETERS = [
    "name", "start_date", "duration_in_months", "monthly_income",
    "manual_monthly_expenses", "use_app_expense_data",
    "is_inflation_applied", "inflation_rate",
    "is_interest_applied", "interest_rate", "interest_type",
    "default_currency",
]


def _plan_parameters(plan: FinancialPlan) -> dict:
    params = {f.name: getattr(plan, f.name) for f in fields(plan) if f.name in PLAN_PARAMETERS}
    params["interest_type"] = plan.interest_type.value
    return params


class PlanCoordinator:
    """计划操作入口，供展示层调用"""

    def __init__(
        self,
        store,
        expense_source=None,
        on_track_threshold: float = ON_TRACK_THRESHOLD,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self.expense_source = expense_source
        self.on_track_threshold = on_track_threshold
        self._today = today or date.today
        self._locks: Dict[str, asyncio.Lock] = {}
        self._background: Set[asyncio.Task] = set()
        self._pending = 0

        self.selected: Optional[PlanWithBreakdowns] = None
        self.current_position: Optional[PlanCurrentPosition] = None
        self.error_message: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    def _lock_for(self, plan_id: str) -> asyncio.Lock:
        return self._locks.setdefault(plan_id, asyncio.Lock())

    def _drop_lock(self, plan_id: str):
        lock = self._locks.get(plan_id)
        if lock is not None and not lock.locked():
            del self._locks[plan_id]

    @asynccontextmanager
    async def _operation(self, plan_id: Optional[str] = None):
        self._pending += 1
        self.error_message = None
        try:
            if plan_id is None:
                yield
            else:
                async with self._lock_for(plan_id):
                    yield
        except PlanningError as exc:
            self.error_message = str(exc)
            raise
        finally:
            self._pending -= 1

    def clear_selection(self):
        self.selected = None
        self.current_position = None

    def _clear_if_selected(self, plan_id: str):
        if self.selected is not None and self.selected.plan.id == plan_id:
            self.clear_selection()

    # ---- 内部读写 ----

    async def _fetch_plan(self, plan_id: str) -> FinancialPlan:
        plan = await asyncio.to_thread(self.store.fetch_plan, plan_id)
        if plan is None:
            self._clear_if_selected(plan_id)
            raise NotFoundError("计划", plan_id)
        return plan

    async def _load(self, plan_id: str) -> PlanWithBreakdowns:
        plan = await self._fetch_plan(plan_id)
        breakdowns = await asyncio.to_thread(self.store.fetch_breakdowns, plan_id)
        return PlanWithBreakdowns(plan=plan, breakdowns=breakdowns)

    async def _expense_figures(self, plan: FinancialPlan):
        if not plan.use_app_expense_data:
            return None
        if self.expense_source is None:
            raise ValidationError("计划使用 App 支出数据，但未配置支出数据来源")
        return await asyncio.to_thread(self.expense_source.figures_for_plan, plan, self._today())

    async def _position(self, pwb: PlanWithBreakdowns) -> Optional[PlanCurrentPosition]:
        plan = pwb.plan
        today = self._today()
        if not plan.is_active(today):
            return None

        elapsed = plan.months_elapsed(today)
        current = pwb.breakdown_for(elapsed - 1)
        expected = current.cumulative_net if current is not None else 0.0

        if self.expense_source is not None:
            spent = await asyncio.to_thread(
                self.expense_source.actual_expenses,
                plan.default_currency, plan.start_date, plan.month_start(elapsed),
            )
            actual = plan.monthly_income * elapsed - spent
        else:
            actual = expected

        return PlanCurrentPosition(
            plan_id=plan.id,
            current_month_index=elapsed - 1,
            months_elapsed=elapsed,
            progress=plan.progress_percentage(today),
            expected_cumulative_net=expected,
            actual_cumulative_net=actual,
            variance=actual - expected,
            is_on_track=actual >= expected * self.on_track_threshold,
        )

    async def _refresh_selection(self, pwb: PlanWithBreakdowns):
        if self.selected is not None and self.selected.plan.id == pwb.plan.id:
            self.selected = pwb
            self.current_position = await self._position(pwb)

    @staticmethod
    def build_plan(params: dict, **identity) -> FinancialPlan:
        ok, message = validate_financial_plan(**params)
        if not ok:
            raise ValidationError(message)
        return FinancialPlan(
            name=params["name"].strip(),
            start_date=params["start_date"],
            duration_in_months=params["duration_in_months"],
            monthly_income=float(params["monthly_income"]),
            manual_monthly_expenses=float(params.get("manual_monthly_expenses") or 0.0),
            use_app_expense_data=bool(params.get("use_app_expense_data", False)),
            is_inflation_applied=bool(params.get("is_inflation_applied", False)),
            inflation_rate=float(params.get("inflation_rate") or 0.0),
            is_interest_applied=bool(params.get("is_interest_applied", False)),
            interest_rate=float(params.get("interest_rate") or 0.0),
            interest_type=InterestType(params.get("interest_type", InterestType.COMPOUND.value)),
            default_currency=params["default_currency"].strip().upper(),
            **identity,
        )

    # ---- 对外操作 ----

    async def list_plans(self) -> List[FinancialPlan]:
        async with self._operation():
            return await asyncio.to_thread(self.store.fetch_all_plans)

    async def create_plan(self, **parameters) -> PlanWithBreakdowns:
        """校验参数、生成全部月度明细，并与计划一起写入"""
        unknown = set(parameters) - set(PLAN_PARAMETERS)
        if unknown:
            raise TypeError(f"未知的计划参数: {', '.join(sorted(unknown))}")
        parameters.setdefault("default_currency", DEFAULT_CURRENCY)
        if isinstance(parameters.get("interest_type"), InterestType):
            parameters["interest_type"] = parameters["interest_type"].value

        async with self._operation():
            plan = self.build_plan(parameters)

        async with self._operation(plan.id):
            figures = await self._expense_figures(plan)
            breakdowns = generate_breakdowns(plan, figures)
            await asyncio.to_thread(self.store.insert_plan_with_breakdowns, plan, breakdowns)
            logger.info("Created plan %s '%s' with %d months", plan.id, plan.name, len(breakdowns))
            return PlanWithBreakdowns(plan=plan, breakdowns=breakdowns)

    async def update_plan(self, plan_id: str, **changes) -> PlanWithBreakdowns:
        """修改计划参数并重新生成全部月度明细（人工修改不保留）"""
        unknown = set(changes) - set(PLAN_PARAMETERS)
        if unknown:
            raise TypeError(f"未知的计划参数: {', '.join(sorted(unknown))}")
        if isinstance(changes.get("interest_type"), InterestType):
            changes["interest_type"] = changes["interest_type"].value

        async with self._operation(plan_id):
            existing = await self._fetch_plan(plan_id)
            params = {**_plan_parameters(existing), **changes}
            plan = self.build_plan(
                params, id=existing.id, created_at=existing.created_at, updated_at=datetime.now(),
            )
            figures = await self._expense_figures(plan)
            breakdowns = generate_breakdowns(plan, figures)
            await asyncio.to_thread(self.store.replace_plan_with_breakdowns, plan, breakdowns)
            logger.info("Updated plan %s and regenerated %d months", plan.id, len(breakdowns))
            pwb = PlanWithBreakdowns(plan=plan, breakdowns=breakdowns)
            await self._refresh_selection(pwb)
            return pwb

    async def select_plan(self, plan_id: str) -> PlanWithBreakdowns:
        """加载计划；计划进行中时同时计算当前位置"""
        async with self._operation(plan_id):
            pwb = await self._load(plan_id)
            self.selected = pwb
            self.current_position = await self._position(pwb)
            return pwb

    async def get_current_position(self, plan_id: str) -> Optional[PlanCurrentPosition]:
        async with self._operation(plan_id):
            return await self._position(await self._load(plan_id))

    async def delete_plan(self, plan_id: str):
        try:
            async with self._operation(plan_id):
                existed = await asyncio.to_thread(self.store.delete_plan, plan_id)
                self._clear_if_selected(plan_id)
                if not existed:
                    raise NotFoundError("计划", plan_id)
                logger.info("Deleted plan %s", plan_id)
        finally:
            self._drop_lock(plan_id)

    async def _recalculate(self, breakdown: PlanMonthlyBreakdown) -> PlanWithBreakdowns:
        async with self._operation(breakdown.plan_id):
            plan = await self._fetch_plan(breakdown.plan_id)
            await asyncio.to_thread(recalculate_breakdowns, self.store, plan, breakdown)
            pwb = await self._load(plan.id)
            await self._refresh_selection(pwb)
            return pwb

    def _background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Recalculation task failed: %s", exc)

    async def update_breakdown(self, breakdown: PlanMonthlyBreakdown) -> PlanWithBreakdowns:
        """
        保存人工修改的月度明细并重算其后所有月份。

        调用方取消等待时，重算仍会在后台完成，保证存储中的累计结余连续。
        """
        ok, message = validate_breakdown_edit(
            breakdown.projected_income,
            breakdown.fixed_expenses,
            breakdown.average_expenses,
            breakdown.total_projected_expenses,
            breakdown.net_amount,
        )
        if not ok:
            self.error_message = message
            raise ValidationError(message)

        if not breakdown.is_manual_override:
            breakdown = replace(breakdown, is_manual_override=True)

        task = asyncio.ensure_future(self._recalculate(breakdown))
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return await asyncio.shield(task)

    async def refresh_expense_data(self, plan_id: str) -> PlanWithBreakdowns:
        """
        用最新记录的支出刷新计划。

        已过月份（含当前月）与人工修改过的月份保持不变；手动支出的计划不做处理。
        """
        async with self._operation(plan_id):
            plan = await self._fetch_plan(plan_id)
            if not plan.use_app_expense_data:
                return await self._load(plan_id)

            figures = await self._expense_figures(plan)
            breakdowns = await asyncio.to_thread(self.store.fetch_breakdowns, plan_id)
            refreshed = refresh_breakdowns(plan, breakdowns, figures, self._today())
            plan = replace(plan, updated_at=datetime.now())
            await asyncio.to_thread(self.store.replace_plan_with_breakdowns, plan, refreshed)
            logger.info("Refreshed expense data for plan %s", plan_id)

            pwb = PlanWithBreakdowns(plan=plan, breakdowns=refreshed)
            await self._refresh_selection(pwb)
            return pwb

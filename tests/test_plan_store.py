"""计划存储测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dataclasses import replace
from datetime import datetime

import pytest

from core.errors import NotFoundError, PersistenceError
from core.projection import generate_breakdowns
from data_manager.plan_store import PlanStore


class TestPlans:
    def test_insert_and_fetch(self, store, make_plan):
        plan = make_plan()
        store.insert_plan(plan)
        assert store.fetch_plan(plan.id) == plan

    def test_fetch_missing(self, store):
        assert store.fetch_plan("FP-missing") is None

    def test_fetch_all_newest_first(self, store, make_plan):
        old = make_plan(name="旧", updated_at=datetime(2024, 1, 1))
        new = make_plan(name="新", updated_at=datetime(2024, 6, 1))
        store.insert_plan(old)
        store.insert_plan(new)
        assert [p.name for p in store.fetch_all_plans()] == ["新", "旧"]

    def test_update(self, store, make_plan):
        plan = make_plan()
        store.insert_plan(plan)
        store.update_plan(replace(plan, name="改名"))
        assert store.fetch_plan(plan.id).name == "改名"

    def test_update_missing(self, store, make_plan):
        with pytest.raises(NotFoundError):
            store.update_plan(make_plan())

    def test_delete_cascades(self, store, make_plan):
        plan = make_plan()
        store.insert_plan_with_breakdowns(plan, generate_breakdowns(plan))
        assert store.delete_plan(plan.id)
        assert store.fetch_plan(plan.id) is None
        assert store.fetch_breakdowns(plan.id) == []
        assert not store.delete_plan(plan.id)


class TestBreakdowns:
    def test_insert_with_plan(self, store, make_plan):
        plan = make_plan()
        breakdowns = generate_breakdowns(plan)
        store.insert_plan_with_breakdowns(plan, breakdowns)
        assert store.fetch_breakdowns(plan.id) == breakdowns

    def test_insert_separately(self, store, make_plan):
        plan = make_plan()
        store.insert_plan(plan)
        store.insert_breakdowns(generate_breakdowns(plan))
        assert len(store.fetch_breakdowns(plan.id)) == 3

    def test_replace(self, store, make_plan):
        plan = make_plan()
        store.insert_plan_with_breakdowns(plan, generate_breakdowns(plan))
        fresh = generate_breakdowns(replace(plan, manual_monthly_expenses=1000.0))
        store.replace_breakdowns(plan.id, fresh)
        assert [b.cumulative_net for b in store.fetch_breakdowns(plan.id)] == [9000, 18000, 27000]

    def test_replace_plan_with_breakdowns(self, store, make_plan):
        plan = make_plan()
        store.insert_plan_with_breakdowns(plan, generate_breakdowns(plan))
        changed = replace(plan, duration_in_months=2)
        store.replace_plan_with_breakdowns(changed, generate_breakdowns(changed))
        assert store.fetch_plan(plan.id).duration_in_months == 2
        assert len(store.fetch_breakdowns(plan.id)) == 2
        assert len(store.fetch_all_plans()) == 1

    def test_replace_plan_missing(self, store, make_plan):
        plan = make_plan()
        with pytest.raises(NotFoundError):
            store.replace_plan_with_breakdowns(plan, generate_breakdowns(plan))

    def test_update_missing_breakdown(self, store, make_plan):
        plan = make_plan()
        store.insert_plan(plan)
        with pytest.raises(NotFoundError):
            store.update_breakdown(generate_breakdowns(plan)[0])


class TestStorageErrors:
    def test_corrupt_workbook(self, tmp_path):
        filepath = tmp_path / "broken.xlsx"
        filepath.write_bytes(b"not a workbook")
        with pytest.raises(PersistenceError) as excinfo:
            PlanStore(filepath).fetch_all_plans()
        assert excinfo.value.__cause__ is not None

    def test_write_failure(self, store, make_plan, monkeypatch):
        def boom(*args, **kwargs):
            raise OSError("read-only file system")

        monkeypatch.setattr("data_manager.excel_handler.write_sheets", boom)
        with pytest.raises(PersistenceError):
            store.insert_plan(make_plan())

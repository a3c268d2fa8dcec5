"""Excel 数据层测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from concurrent.futures import ThreadPoolExecutor

import pytest
import pandas as pd

from data_manager.excel_handler import (
    init_excel, read_sheet, write_sheets,
    save_plan, get_all_plans, get_plan_by_id, delete_plan,
    save_plan_with_breakdowns, get_plan_breakdowns, update_breakdown,
    save_expense, get_expenses,
    get_config, set_config, get_all_config,
)
from config.constants import SHEET_PLANS, SHEET_BREAKDOWNS, SHEET_CONFIG


def _plan_row(plan_id="test-001", **overrides):
    row = {
        "plan_id": plan_id,
        "plan_name": "测试计划",
        "start_date": "2024-01-01",
        "duration_in_months": 3,
        "monthly_income": 10000.0,
        "manual_monthly_expenses": 6000.0,
        "use_app_expense_data": False,
        "is_inflation_applied": False,
        "inflation_rate": 0.0,
        "is_interest_applied": False,
        "interest_rate": 0.0,
        "interest_type": "compound",
        "created_at": "2024-01-01T09:00:00",
        "updated_at": "2024-01-01T09:00:00",
        "default_currency": "USD",
    }
    row.update(overrides)
    return row


def _breakdown_rows(plan_id, n=3):
    return [
        {
            "breakdown_id": f"{plan_id}-m{m}", "plan_id": plan_id, "month_index": m,
            "projected_income": 10000.0, "fixed_expenses": 6000.0, "average_expenses": 0.0,
            "total_projected_expenses": 6000.0, "net_amount": 4000.0,
            "interest_earned": 0.0, "cumulative_net": 4000.0 * (m + 1), "is_manual_override": False,
        }
        for m in range(n)
    ]


class TestInitExcel:
    def test_creates_file(self, temp_excel):
        assert temp_excel.exists()

    def test_has_all_sheets(self, temp_excel):
        xls = pd.ExcelFile(temp_excel, engine="openpyxl")
        assert "财务计划" in xls.sheet_names
        assert "月度明细" in xls.sheet_names
        assert "支出记录" in xls.sheet_names
        assert "系统配置" in xls.sheet_names

    def test_default_config(self, temp_excel):
        assert get_config("default_currency", temp_excel) == "USD"
        assert float(get_config("on_track_threshold", temp_excel)) == 0.9

    def test_creates_missing_file_on_read(self, tmp_path):
        filepath = tmp_path / "nested" / "data.xlsx"
        assert read_sheet(SHEET_PLANS, filepath).empty
        assert filepath.exists()


class TestPlanCRUD:
    def test_save_and_get(self, temp_excel):
        save_plan(_plan_row(), temp_excel)
        plans = get_all_plans(temp_excel)
        assert len(plans) == 1
        assert plans.iloc[0]["plan_id"] == "test-001"

    def test_update_existing(self, temp_excel):
        save_plan(_plan_row(), temp_excel)
        save_plan(_plan_row(plan_name="改名"), temp_excel)
        assert len(get_all_plans(temp_excel)) == 1
        assert get_plan_by_id("test-001", temp_excel)["plan_name"] == "改名"

    def test_get_missing(self, temp_excel):
        assert get_plan_by_id("nope", temp_excel) is None

    def test_delete_cascades(self, temp_excel):
        save_plan_with_breakdowns(_plan_row("keep"), _breakdown_rows("keep"), temp_excel)
        save_plan_with_breakdowns(_plan_row("drop"), _breakdown_rows("drop"), temp_excel)

        delete_plan("drop", temp_excel)
        assert get_all_plans(temp_excel)["plan_id"].tolist() == ["keep"]
        assert get_plan_breakdowns("drop", temp_excel).empty
        assert len(get_plan_breakdowns("keep", temp_excel)) == 3


class TestBreakdowns:
    def test_saved_with_plan(self, temp_excel):
        save_plan_with_breakdowns(_plan_row(), _breakdown_rows("test-001"), temp_excel)
        df = get_plan_breakdowns("test-001", temp_excel)
        assert df["month_index"].tolist() == [0, 1, 2]
        assert df["cumulative_net"].tolist() == [4000.0, 8000.0, 12000.0]

    def test_save_again_replaces(self, temp_excel):
        save_plan_with_breakdowns(_plan_row(), _breakdown_rows("test-001", 3), temp_excel)
        save_plan_with_breakdowns(_plan_row(), _breakdown_rows("test-001", 2), temp_excel)
        assert len(get_all_plans(temp_excel)) == 1
        assert len(get_plan_breakdowns("test-001", temp_excel)) == 2

    def test_update_one(self, temp_excel):
        save_plan_with_breakdowns(_plan_row(), _breakdown_rows("test-001"), temp_excel)
        row = _breakdown_rows("test-001")[1]
        row.update(net_amount=3000.0, cumulative_net=7000.0, is_manual_override=True)
        assert update_breakdown(row, temp_excel)

        df = get_plan_breakdowns("test-001", temp_excel)
        assert df.loc[1, "net_amount"] == 3000.0
        assert bool(df.loc[1, "is_manual_override"])
        assert df.loc[2, "cumulative_net"] == 12000.0

    def test_update_missing(self, temp_excel):
        row = _breakdown_rows("test-001")[0]
        assert not update_breakdown(row, temp_excel)


class TestAtomicWrite:
    def test_other_sheets_kept(self, temp_excel):
        save_plan(_plan_row(), temp_excel)
        write_sheets({SHEET_BREAKDOWNS: pd.DataFrame(_breakdown_rows("test-001"))}, temp_excel)
        assert len(get_all_plans(temp_excel)) == 1
        assert len(read_sheet(SHEET_BREAKDOWNS, temp_excel)) == 3

    def test_no_tmp_left(self, temp_excel):
        save_plan(_plan_row(), temp_excel)
        assert not list(temp_excel.parent.glob("*.tmp*"))

    def test_failed_write_keeps_workbook(self, temp_excel, monkeypatch):
        save_plan(_plan_row(), temp_excel)

        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("data_manager.excel_handler.os.replace", boom)
        with pytest.raises(OSError):
            save_plan_with_breakdowns(_plan_row("new"), _breakdown_rows("new"), temp_excel)
        monkeypatch.undo()

        assert get_all_plans(temp_excel)["plan_id"].tolist() == ["test-001"]
        assert get_plan_breakdowns("new", temp_excel).empty
        assert not list(temp_excel.parent.glob("*.tmp*"))

    def test_parallel_writers_keep_every_plan(self, temp_excel):
        ids = [f"test-{i:03d}" for i in range(8)]
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(
                lambda pid: save_plan_with_breakdowns(_plan_row(pid), _breakdown_rows(pid), temp_excel),
                ids,
            ))

        assert sorted(get_all_plans(temp_excel)["plan_id"].tolist()) == ids
        for pid in ids:
            assert len(get_plan_breakdowns(pid, temp_excel)) == 3
        assert not list(temp_excel.parent.glob("*.tmp*"))


class TestExpenses:
    def test_save_expense(self, temp_excel):
        save_expense({
            "expense_id": "EX-1", "expense_date": "2024-01-05", "amount": 120.5,
            "currency": "USD", "recurrence_type": "monthly", "category": "房租", "description": "",
        }, temp_excel)
        df = get_expenses(temp_excel)
        assert len(df) == 1
        assert df.iloc[0]["amount"] == 120.5


class TestConfig:
    def test_set_and_get(self, temp_excel):
        set_config("test_key", "test_value", "测试", temp_excel)
        assert get_config("test_key", temp_excel) == "test_value"

    def test_update_existing(self, temp_excel):
        set_config("interest_rate", "0.004", "", temp_excel)
        assert float(get_config("interest_rate", temp_excel)) == 0.004

    def test_get_all_config(self, temp_excel):
        config_df = get_all_config(temp_excel)
        assert not config_df.empty
        assert "key" in config_df.columns
        assert "value" in config_df.columns
        keys = config_df["key"].tolist()
        assert "default_currency" in keys
        assert "inflation_rate" in keys
        assert "interest_rate" in keys
        assert "on_track_threshold" in keys

    def test_missing_key(self, temp_excel):
        assert get_config("nope", temp_excel) is None

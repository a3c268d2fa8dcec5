import sys
import pytest
from datetime import date
from pathlib import Path

# 确保项目根目录在 sys.path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from data_manager.excel_handler import init_excel
from data_manager.plan_store import PlanStore
from data_manager.schema import FinancialPlan


@pytest.fixture
def temp_excel(tmp_path):
    """创建临时 Excel 文件"""
    filepath = tmp_path / "test_data.xlsx"
    init_excel(filepath)
    return filepath


@pytest.fixture
def store(temp_excel):
    return PlanStore(temp_excel)


@pytest.fixture
def make_plan():
    """收入 10000、手动支出 6000 的计划，可覆盖任意字段"""
    def _make(**overrides):
        params = dict(
            name="测试计划",
            start_date=date(2024, 1, 1),
            duration_in_months=3,
            monthly_income=10000.0,
            manual_monthly_expenses=6000.0,
            default_currency="USD",
        )
        params.update(overrides)
        return FinancialPlan(**params)
    return _make

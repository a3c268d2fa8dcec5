"""输入校验测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import date

import pytest

from config.settings import MAX_DURATION_MONTHS
from data_manager.data_validator import validate_breakdown_edit, validate_financial_plan


def _params(**overrides):
    params = dict(
        name="买房储蓄",
        start_date=date(2024, 1, 1),
        duration_in_months=12,
        monthly_income=10000.0,
        manual_monthly_expenses=6000.0,
        default_currency="USD",
    )
    params.update(overrides)
    return params


class TestValidatePlan:
    def test_valid(self):
        assert validate_financial_plan(**_params()) == (True, "")

    @pytest.mark.parametrize("months", [0, -3])
    def test_non_positive_duration(self, months):
        ok, msg = validate_financial_plan(**_params(duration_in_months=months))
        assert not ok
        assert "至少" in msg

    def test_duration_too_long(self):
        ok, _ = validate_financial_plan(**_params(duration_in_months=MAX_DURATION_MONTHS + 1))
        assert not ok

    def test_fractional_duration(self):
        ok, _ = validate_financial_plan(**_params(duration_in_months=2.5))
        assert not ok

    def test_blank_name(self):
        ok, msg = validate_financial_plan(**_params(name="  "))
        assert not ok
        assert "名称" in msg

    def test_negative_income(self):
        ok, _ = validate_financial_plan(**_params(monthly_income=-1))
        assert not ok

    def test_first_error_wins(self):
        ok, msg = validate_financial_plan(**_params(name="", duration_in_months=0))
        assert not ok
        assert "名称" in msg

    def test_inflation_requires_rate(self):
        ok, msg = validate_financial_plan(**_params(is_inflation_applied=True, inflation_rate=None))
        assert not ok
        assert "通胀" in msg
        ok, _ = validate_financial_plan(**_params(is_inflation_applied=True, inflation_rate=-0.01))
        assert not ok

    def test_inflation_rate_ignored_when_disabled(self):
        ok, _ = validate_financial_plan(**_params(is_inflation_applied=False, inflation_rate=-0.5))
        assert ok

    def test_interest_type(self):
        ok, _ = validate_financial_plan(**_params(
            is_interest_applied=True, interest_rate=0.01, interest_type="daily",
        ))
        assert not ok

    def test_negative_manual_expenses(self):
        ok, _ = validate_financial_plan(**_params(manual_monthly_expenses=-100))
        assert not ok
        ok, _ = validate_financial_plan(**_params(manual_monthly_expenses=-100, use_app_expense_data=True))
        assert ok

    def test_missing_currency(self):
        ok, _ = validate_financial_plan(**_params(default_currency=""))
        assert not ok


class TestValidateEdit:
    def test_valid(self):
        assert validate_breakdown_edit(10000, 5000, 1000, 6000, 4000)[0]

    def test_negative_net_allowed(self):
        assert validate_breakdown_edit(1000, 5000, 1000, 6000, -5000)[0]

    def test_negative_expense(self):
        ok, msg = validate_breakdown_edit(10000, -1, 0, 0, 10000)
        assert not ok
        assert "支出" in msg

    def test_not_a_number(self):
        ok, _ = validate_breakdown_edit(float("nan"), 0, 0, 0, 0)
        assert not ok

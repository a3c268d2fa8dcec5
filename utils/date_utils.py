import calendar
from datetime import date, datetime
from typing import Optional

import pandas as pd
from dateutil.relativedelta import relativedelta


def add_months(d: date, months: int) -> date:
    """日期加 N 个月（按日历月，月末自动截断）"""
    return d + relativedelta(months=months)


def whole_months_between(d1: date, d2: date) -> int:
    """d1 到 d2 之间完整经过的日历月数（向下取整）"""
    delta = relativedelta(d2, d1)
    return delta.years * 12 + delta.months


def month_bounds(d: date) -> tuple[date, date]:
    """返回 d 所在自然月的 (首日, 末日)"""
    max_day = calendar.monthrange(d.year, d.month)[1]
    return d.replace(day=1), d.replace(day=max_day)


def parse_date(d) -> Optional[date]:
    """解析日期，支持字符串或 date 对象"""
    if d is None or (not isinstance(d, str) and pd.isna(d)):
        return None
    if isinstance(d, pd.Timestamp):
        return d.date()
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    if isinstance(d, str):
        if not d.strip():
            return None
        return date.fromisoformat(d[:10])
    return None


def parse_datetime(d) -> Optional[datetime]:
    if d is None or (not isinstance(d, str) and pd.isna(d)):
        return None
    if isinstance(d, pd.Timestamp):
        return d.to_pydatetime()
    if isinstance(d, datetime):
        return d
    if isinstance(d, date):
        return datetime(d.year, d.month, d.day)
    if isinstance(d, str) and d.strip():
        return datetime.fromisoformat(d)
    return None

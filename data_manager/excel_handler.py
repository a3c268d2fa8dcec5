import functools
import logging
import os
import shutil
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from config.constants import (
    SHEET_PLANS, SHEET_BREAKDOWNS, SHEET_EXPENSES, SHEET_CONFIG,
    PLANS_COLUMNS, BREAKDOWN_COLUMNS, EXPENSES_COLUMNS, CONFIG_COLUMNS,
)
from config.settings import (
    EXCEL_FILE, BACKUP_KEEP, DEFAULT_CURRENCY,
    DEFAULT_INFLATION_RATE, DEFAULT_INTEREST_RATE, ON_TRACK_THRESHOLD,
)

logger = logging.getLogger(__name__)

SHEET_COLUMNS = {
    SHEET_PLANS: PLANS_COLUMNS,
    SHEET_BREAKDOWNS: BREAKDOWN_COLUMNS,
    SHEET_EXPENSES: EXPENSES_COLUMNS,
    SHEET_CONFIG: CONFIG_COLUMNS,
}

# 工作簿整体读写，同一进程内的所有读改写串行执行
_workbook_lock = threading.RLock()


def _locked(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with _workbook_lock:
            return func(*args, **kwargs)
    return wrapper


def _default_config_rows() -> List[dict]:
    now = datetime.now().isoformat()
    return [
        {"key": "default_currency", "value": DEFAULT_CURRENCY, "description": "默认币种", "updated_at": now},
        {"key": "inflation_rate", "value": str(DEFAULT_INFLATION_RATE), "description": "默认月通胀率", "updated_at": now},
        {"key": "interest_rate", "value": str(DEFAULT_INTEREST_RATE), "description": "默认月利率", "updated_at": now},
        {"key": "on_track_threshold", "value": str(ON_TRACK_THRESHOLD), "description": "达标阈值", "updated_at": now},
    ]


@_locked
def init_excel(filepath: Path = EXCEL_FILE):
    """初始化 Excel 文件，创建所有 Sheet 和表头"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    if filepath.exists():
        return

    with pd.ExcelWriter(filepath, engine="openpyxl") as writer:
        for sheet, columns in SHEET_COLUMNS.items():
            if sheet == SHEET_CONFIG:
                df = pd.DataFrame(_default_config_rows(), columns=columns)
            else:
                df = pd.DataFrame(columns=columns)
            df.to_excel(writer, sheet_name=sheet, index=False)
    logger.info("Initialized workbook %s", filepath)


def backup_excel(filepath: Path = EXCEL_FILE):
    """写入前自动备份"""
    filepath = Path(filepath)
    if filepath.exists():
        ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = filepath.with_suffix(f".xlsx.bak_{ts}")
        shutil.copy2(filepath, backup_path)
        # 只保留最近 BACKUP_KEEP 个备份
        backups = sorted(filepath.parent.glob(f"{filepath.stem}.xlsx.bak_*"))
        for old in backups[:-BACKUP_KEEP]:
            old.unlink()


@_locked
def read_sheet(sheet_name: str, filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    """读取指定 Sheet"""
    init_excel(filepath)
    try:
        df = pd.read_excel(filepath, sheet_name=sheet_name, engine="openpyxl")
    except ValueError:
        df = pd.DataFrame(columns=SHEET_COLUMNS.get(sheet_name))
    return df


@_locked
def write_sheets(frames: Dict[str, pd.DataFrame], filepath: Path = EXCEL_FILE):
    """
    一次性替换多个 Sheet（其余 Sheet 原样保留）。

    先写临时文件再 os.replace，整个工作簿要么全部更新，要么保持原状。
    """
    filepath = Path(filepath)
    init_excel(filepath)
    backup_excel(filepath)

    existing = pd.read_excel(filepath, sheet_name=None, engine="openpyxl")
    existing.update(frames)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f"{filepath.stem}.tmp", suffix=filepath.suffix, dir=filepath.parent,
    )
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        with pd.ExcelWriter(tmp_path, engine="openpyxl") as writer:
            for sheet, df in existing.items():
                df.to_excel(writer, sheet_name=sheet, index=False)
        os.replace(tmp_path, filepath)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def write_sheet(df: pd.DataFrame, sheet_name: str, filepath: Path = EXCEL_FILE):
    """写入指定 Sheet（覆盖该 Sheet，保留其他 Sheet）"""
    write_sheets({sheet_name: df}, filepath)


def _append_rows(df: pd.DataFrame, rows: List[dict], columns: List[str]) -> pd.DataFrame:
    new_rows = pd.DataFrame(rows, columns=columns)
    if df.empty:
        return new_rows
    return pd.concat([df, new_rows], ignore_index=True)


# ---- 财务计划 CRUD ----

def get_all_plans(filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    return read_sheet(SHEET_PLANS, filepath)


def get_plan_by_id(plan_id: str, filepath: Path = EXCEL_FILE) -> Optional[pd.Series]:
    df = get_all_plans(filepath)
    match = df[df["plan_id"] == plan_id]
    if match.empty:
        return None
    return match.iloc[0]


@_locked
def save_plan(plan_dict: dict, filepath: Path = EXCEL_FILE):
    df = get_all_plans(filepath)
    existing = df[df["plan_id"] == plan_dict["plan_id"]]
    if not existing.empty:
        df = df.astype(object)
        for col in plan_dict:
            if col in df.columns:
                df.loc[df["plan_id"] == plan_dict["plan_id"], col] = plan_dict[col]
    else:
        df = _append_rows(df, [plan_dict], PLANS_COLUMNS)
    write_sheet(df, SHEET_PLANS, filepath)


@_locked
def save_plan_with_breakdowns(plan_dict: dict, breakdown_rows: List[dict], filepath: Path = EXCEL_FILE):
    """保存计划及其全部月度明细（替换同 ID 的旧记录），一次写入"""
    plans = get_all_plans(filepath)
    plans = plans[plans["plan_id"] != plan_dict["plan_id"]]
    plans = _append_rows(plans, [plan_dict], PLANS_COLUMNS)
    breakdowns = read_sheet(SHEET_BREAKDOWNS, filepath)
    breakdowns = breakdowns[breakdowns["plan_id"] != plan_dict["plan_id"]]
    breakdowns = _append_rows(breakdowns, breakdown_rows, BREAKDOWN_COLUMNS)
    write_sheets({SHEET_PLANS: plans, SHEET_BREAKDOWNS: breakdowns}, filepath)


@_locked
def delete_plan(plan_id: str, filepath: Path = EXCEL_FILE):
    """删除计划，同时删除其月度明细"""
    plans = get_all_plans(filepath)
    plans = plans[plans["plan_id"] != plan_id]
    breakdowns = read_sheet(SHEET_BREAKDOWNS, filepath)
    breakdowns = breakdowns[breakdowns["plan_id"] != plan_id]
    write_sheets({SHEET_PLANS: plans, SHEET_BREAKDOWNS: breakdowns}, filepath)


# ---- 月度明细 ----

def get_plan_breakdowns(plan_id: str, filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    """按 month_index 排序返回某计划的月度明细"""
    df = read_sheet(SHEET_BREAKDOWNS, filepath)
    df = df[df["plan_id"] == plan_id]
    return df.sort_values("month_index").reset_index(drop=True)


@_locked
def insert_breakdowns(rows: List[dict], filepath: Path = EXCEL_FILE):
    df = read_sheet(SHEET_BREAKDOWNS, filepath)
    df = _append_rows(df, rows, BREAKDOWN_COLUMNS)
    write_sheet(df, SHEET_BREAKDOWNS, filepath)


@_locked
def save_plan_breakdowns(plan_id: str, rows: List[dict], filepath: Path = EXCEL_FILE):
    """保存月度明细（替换该计划的所有记录）"""
    df = read_sheet(SHEET_BREAKDOWNS, filepath)
    df = df[df["plan_id"] != plan_id]
    df = _append_rows(df, rows, BREAKDOWN_COLUMNS)
    write_sheet(df, SHEET_BREAKDOWNS, filepath)


@_locked
def update_breakdown(row: dict, filepath: Path = EXCEL_FILE) -> bool:
    """按 breakdown_id 覆盖一条月度明细，返回是否找到"""
    df = read_sheet(SHEET_BREAKDOWNS, filepath)
    mask = df["breakdown_id"] == row["breakdown_id"]
    if not mask.any():
        return False
    df = df.astype(object)
    for col in BREAKDOWN_COLUMNS:
        if col in row:
            df.loc[mask, col] = row[col]
    write_sheet(df, SHEET_BREAKDOWNS, filepath)
    return True


# ---- 支出记录 ----

def get_expenses(filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    return read_sheet(SHEET_EXPENSES, filepath)


@_locked
def save_expense(record: dict, filepath: Path = EXCEL_FILE):
    df = get_expenses(filepath)
    df = _append_rows(df, [record], EXPENSES_COLUMNS)
    write_sheet(df, SHEET_EXPENSES, filepath)


# ---- 系统配置 ----

def get_config(key: str, filepath: Path = EXCEL_FILE) -> Optional[str]:
    df = read_sheet(SHEET_CONFIG, filepath)
    match = df[df["key"] == key]
    if match.empty:
        return None
    return str(match.iloc[0]["value"])


def get_all_config(filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    """获取所有系统配置"""
    return read_sheet(SHEET_CONFIG, filepath)


@_locked
def set_config(key: str, value: str, description: str = "", filepath: Path = EXCEL_FILE):
    df = read_sheet(SHEET_CONFIG, filepath).astype(object)
    now = datetime.now().isoformat()
    if key in df["key"].values:
        df.loc[df["key"] == key, "value"] = value
        df.loc[df["key"] == key, "updated_at"] = now
        if description:
            df.loc[df["key"] == key, "description"] = description
    else:
        df = _append_rows(df, [{
            "key": key, "value": value,
            "description": description, "updated_at": now,
        }], CONFIG_COLUMNS)
    write_sheet(df, SHEET_CONFIG, filepath)

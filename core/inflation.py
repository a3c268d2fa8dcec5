"""通胀调整计算"""
import numpy as np
import pandas as pd

from config.constants import BREAKDOWN_AMOUNT_COLUMNS


def inflation_factor(monthly_rate: float, month_index: int) -> float:
    """第 month_index 月相对第 0 月的价格倍数"""
    return (1 + monthly_rate) ** month_index


def inflation_factors(monthly_rate: float, n_months: int) -> np.ndarray:
    return np.power(1 + monthly_rate, np.arange(n_months, dtype=float))


def to_real_terms(frame: pd.DataFrame, monthly_rate: float) -> pd.DataFrame:
    """将月度明细中的金额折算为第 0 月的购买力"""
    df = frame.copy()
    factors = np.power(1 + monthly_rate, df["month_index"].to_numpy(dtype=float))

    for col in BREAKDOWN_AMOUNT_COLUMNS:
        if col in df.columns:
            df[f"real_{col}"] = (df[col].to_numpy(dtype=float) / factors).round(2)
    df["discount_factor"] = np.round(1 / factors, 6)

    return df

def fmt_amount(value: float, currency: str = "") -> str:
    """格式化金额：1234567.891 -> 1,234,567.89 USD"""
    text = f"{value:,.2f}"
    return f"{text} {currency}" if currency else text


def fmt_rate(value: float) -> str:
    """格式化月利率（小数）：0.0125 -> 1.25%/月"""
    return f"{value * 100:.2f}%/月"


def fmt_percent(value: float) -> str:
    """格式化比例：0.3456 -> 34.56%"""
    return f"{value * 100:.2f}%"


def fmt_months(months: int) -> str:
    """格式化月数为年月：36 -> 3年"""
    years = months // 12
    remain = months % 12
    if remain == 0:
        return f"{years}年"
    if years == 0:
        return f"{remain}个月"
    return f"{years}年{remain}个月"

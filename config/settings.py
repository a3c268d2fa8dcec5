import os
from pathlib import Path

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 数据文件路径
DATA_DIR = Path(os.environ.get("PLANNER_DATA_DIR", PROJECT_ROOT / "data"))
EXCEL_FILE = Path(os.environ.get("PLANNER_DATA_FILE", DATA_DIR / "plan_data.xlsx"))
BACKUP_KEEP = 5

# 默认币种
DEFAULT_CURRENCY = "USD"

# 默认月通胀率 / 月利率（小数，0.002 = 每月 0.2%）
DEFAULT_INFLATION_RATE = 0.002
DEFAULT_INTEREST_RATE = 0.003

# 单个计划最长期限（月）
MAX_DURATION_MONTHS = 600

# 实际累计结余不低于预期的该比例即视为达标
ON_TRACK_THRESHOLD = 0.9

# 一次性支出的平均回看月数
AVERAGE_LOOKBACK_MONTHS = 3

# 金额精度
AMOUNT_PRECISION = 2

# 日志
LOG_LEVEL = os.environ.get("PLANNER_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

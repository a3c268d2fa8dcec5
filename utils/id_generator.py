import uuid
from datetime import datetime


def generate_plan_id() -> str:
    return f"FP-{datetime.now().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:4]}"


def generate_breakdown_id() -> str:
    return f"BD-{uuid.uuid4().hex[:12]}"


def generate_expense_id() -> str:
    return f"EX-{datetime.now().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:4]}"

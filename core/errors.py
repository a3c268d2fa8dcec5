"""计划引擎的错误类型"""


class PlanningError(Exception):
    """所有计划相关错误的基类"""


class ValidationError(PlanningError):
    """计划参数或月度明细修改不合法，未产生任何写入"""


class PersistenceError(PlanningError):
    """存储读写失败"""


class NotFoundError(PlanningError):
    """计划或月度明细不存在"""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} '{identifier}' 不存在")
        self.kind = kind
        self.identifier = identifier

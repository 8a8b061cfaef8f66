# CogniLab/cognilab/circuit_domain/errors.py
"""
编辑器输入错误。

全部是本地、可恢复的错误：同步抛给调用方，失败的操作不修改任何状态。
"""


class CompositionError(ValueError):
    """所有编辑器错误的基类。error_code 供命令层生成结构化的失败结果。"""
    error_code = "COMPOSITION_ERROR"


class UnknownEquipmentType(CompositionError):
    error_code = "UNKNOWN_EQUIPMENT_TYPE"

    def __init__(self, equipment_type_id: str):
        self.equipment_type_id = equipment_type_id
        super().__init__(f"设备类型 '{equipment_type_id}' 不在设备目录中。")


class NotFound(CompositionError):
    error_code = "NOT_FOUND"

    def __init__(self, kind: str, identity: object):
        self.kind = kind
        self.identity = identity
        super().__init__(f"{kind} '{identity}' 不存在。")


class UnknownEndpoint(CompositionError):
    error_code = "UNKNOWN_ENDPOINT"

    def __init__(self, identity: object):
        self.identity = identity
        super().__init__(f"连线端点 '{identity}' 不是当前电路中的设备。")


class SelfConnection(CompositionError):
    error_code = "SELF_CONNECTION"

    def __init__(self, identity: object):
        self.identity = identity
        super().__init__(f"不能将设备 '{identity}' 连接到它自己。")

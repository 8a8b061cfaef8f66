# CogniLab/cognilab/circuit_domain/identity.py
"""
放置实例 / 连线的身份标识。

身份只有两种形态：
    - LocalId:     客户端生成的临时身份，仅在下一次保存成功之前有效。
    - PersistedId: 存储层分配的永久身份，之后保持稳定。

Identity = Union[LocalId, PersistedId]。调用方通过 isinstance / is_persisted 区分两者，
而不是去解析字符串前缀。
"""
import uuid
from typing import Any, Dict, Union

KIND_LOCAL = "local"
KIND_PERSISTED = "persisted"


class LocalId:
    """客户端临时身份。token 在当前进程内唯一。"""
    __slots__ = ['token']

    def __init__(self, token: str):
        if not isinstance(token, str) or not token.strip():
            raise ValueError("LocalId 的 token 必须是非空字符串。")
        object.__setattr__(self, 'token', token.strip())

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("LocalId 是不可变对象。")

    @classmethod
    def new(cls) -> 'LocalId':
        """生成一个新的临时身份。"""
        return cls(uuid.uuid4().hex[:12])

    @property
    def is_persisted(self) -> bool:
        return False

    @property
    def value(self) -> str:
        return self.token

    def __eq__(self, other: object) -> bool:
        return isinstance(other, LocalId) and other.token == self.token

    def __hash__(self) -> int:
        return hash((KIND_LOCAL, self.token))

    def __str__(self) -> str:
        return self.token

    def __repr__(self) -> str:
        return f"LocalId({self.token!r})"


class PersistedId:
    """存储层分配的永久身份。"""
    __slots__ = ['value']

    def __init__(self, value: str):
        if not isinstance(value, str) or not value.strip():
            raise ValueError("PersistedId 的值必须是非空字符串。")
        object.__setattr__(self, 'value', value.strip())

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("PersistedId 是不可变对象。")

    @property
    def is_persisted(self) -> bool:
        return True

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PersistedId) and other.value == self.value

    def __hash__(self) -> int:
        return hash((KIND_PERSISTED, self.value))

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"PersistedId({self.value!r})"


Identity = Union[LocalId, PersistedId]


def identity_to_dict(identity: Identity) -> Dict[str, str]:
    """序列化为 {"kind": ..., "value": ...}。"""
    if isinstance(identity, LocalId):
        return {"kind": KIND_LOCAL, "value": identity.token}
    if isinstance(identity, PersistedId):
        return {"kind": KIND_PERSISTED, "value": identity.value}
    raise TypeError(f"不支持的身份类型: {type(identity)}")


def identity_from_dict(data: Dict[str, Any]) -> Identity:
    """
    从 {"kind": ..., "value": ...} 反序列化身份。

    Raises:
        ValueError: kind 未知或 value 为空。
    """
    if not isinstance(data, dict):
        raise ValueError(f"身份必须是字典格式, 实际为: {type(data)}")
    kind = data.get("kind")
    value = data.get("value")
    if kind == KIND_LOCAL:
        return LocalId(value)
    if kind == KIND_PERSISTED:
        return PersistedId(value)
    raise ValueError(f"未知的身份类型 '{kind}'。")

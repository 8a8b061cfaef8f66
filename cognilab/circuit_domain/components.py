# CogniLab/cognilab/circuit_domain/components.py
import copy
import logging
from typing import Optional, Dict, Any

from .identity import Identity, LocalId, PersistedId, identity_to_dict, identity_from_dict

# 使用特定于此模块的 logger，而不是根 logger，便于追踪日志来源
logger = logging.getLogger(__name__)

DEFAULT_SOURCE_TERMINAL = "right"
DEFAULT_TARGET_TERMINAL = "left"
DEFAULT_WIRE_COLOR = "#22c55e"


def _identity_from_wire(raw: Any) -> Identity:
    """
    存储层返回的 id 是普通字符串（按约定一定是永久身份）；
    客户端序列化的 id 是 {"kind", "value"} 字典。
    """
    if isinstance(raw, (LocalId, PersistedId)):
        return raw
    if isinstance(raw, dict):
        return identity_from_dict(raw)
    if isinstance(raw, str) and raw.strip():
        return PersistedId(raw)
    raise ValueError(f"无法解析身份: {raw!r}")


class EquipmentType:
    """
    设备目录中的一种设备类型（只读，由外部目录提供）。

    Attributes:
        id (str): 设备类型ID。
        name (str): 显示名称 (例如 "Resistor 1kΩ")。
        type (str): 类别 (例如 "resistor", "power-supply")。
        default_configuration (Dict[str, Any]): 默认配置模板，放置设备时会被深拷贝。
    """
    __slots__ = ['id', 'name', 'type', 'default_configuration']

    def __init__(self, equipment_type_id: str, name: str, category: str = "",
                 default_configuration: Optional[Dict[str, Any]] = None):
        if not isinstance(equipment_type_id, str) or not equipment_type_id.strip():
            logger.error(f"尝试创建设备类型时，ID无效: '{equipment_type_id}'")
            raise ValueError("设备类型 ID 必须是有效的非空字符串。")
        self.id: str = equipment_type_id.strip()
        self.name: str = (name or self.id).strip()
        self.type: str = (category or "").strip()
        self.default_configuration: Dict[str, Any] = dict(default_configuration or {})

    def __repr__(self) -> str:
        return f"EquipmentType(id='{self.id}', name='{self.name}', type='{self.type}')"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "defaultConfiguration": copy.deepcopy(self.default_configuration),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EquipmentType':
        return cls(
            data.get("id"),
            data.get("name") or data.get("equipmentName") or "",
            data.get("type") or data.get("equipmentType") or "",
            data.get("defaultConfiguration") or data.get("defaultConfigJson") or {},
        )


class PlacementInstance:
    """
    画布上的一个设备实例。

    Attributes:
        identity (Identity): 临时 (LocalId) 或永久 (PersistedId) 身份。
        equipment_type_id (str): 引用的设备类型，创建后不可修改。
        x, y (float): 画布坐标。
        depth_order (int): 插入时的叠放顺序。
        configuration (Dict[str, Any]): 实例配置，与设备类型的模板相互独立。
        equipment_name (Optional[str]): 设备显示名称，用于评分反馈。
    """
    __slots__ = ['identity', '_equipment_type_id', 'x', 'y', 'depth_order', 'configuration', 'equipment_name']

    def __init__(self, identity: Identity, equipment_type_id: str, x: float = 0.0, y: float = 0.0,
                 depth_order: int = 0, configuration: Optional[Dict[str, Any]] = None,
                 equipment_name: Optional[str] = None):
        if not isinstance(identity, (LocalId, PersistedId)):
            raise TypeError(f"identity 必须是 LocalId 或 PersistedId, 实际为: {type(identity)}")
        if not isinstance(equipment_type_id, str) or not equipment_type_id.strip():
            raise ValueError("equipment_type_id 必须是有效的非空字符串。")
        self.identity: Identity = identity
        self._equipment_type_id: str = equipment_type_id.strip()
        self.x: float = float(x)
        self.y: float = float(y)
        self.depth_order: int = int(depth_order)
        self.configuration: Dict[str, Any] = configuration if configuration is not None else {}
        self.equipment_name: Optional[str] = equipment_name

    @property
    def equipment_type_id(self) -> str:
        return self._equipment_type_id

    def __str__(self) -> str:
        name = self.equipment_name or self._equipment_type_id
        return f"设备: {name} (ID: {self.identity}) @ ({self.x:g}, {self.y:g})"

    def __repr__(self) -> str:
        return (f"PlacementInstance(identity={self.identity!r}, equipment_type_id='{self._equipment_type_id}', "
                f"x={self.x}, y={self.y}, depth_order={self.depth_order})")

    def copy(self) -> 'PlacementInstance':
        return PlacementInstance(self.identity, self._equipment_type_id, self.x, self.y, self.depth_order,
                                 copy.deepcopy(self.configuration), self.equipment_name)

    def with_identity(self, identity: Identity) -> 'PlacementInstance':
        clone = self.copy()
        clone.identity = identity
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": identity_to_dict(self.identity),
            "equipmentId": self._equipment_type_id,
            "equipmentName": self.equipment_name,
            "positionX": self.x,
            "positionY": self.y,
            "positionZ": self.depth_order,
            "configJson": copy.deepcopy(self.configuration),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlacementInstance':
        equipment = data.get("equipment") or {}
        return cls(
            _identity_from_wire(data.get("id")),
            data.get("equipmentId"),
            data.get("positionX", 0.0),
            data.get("positionY", 0.0),
            data.get("positionZ", 0),
            copy.deepcopy(data.get("configJson") or {}),
            data.get("equipmentName") or equipment.get("equipmentName") or equipment.get("name"),
        )


class WireConnection:
    """
    两个放置实例之间的一根导线。颜色只用于显示，不参与评分。
    source_terminal / target_terminal 为 None 时表示使用默认接线端子。
    """
    __slots__ = ['identity', 'source_placement_id', 'target_placement_id',
                 'source_terminal', 'target_terminal', 'color']

    def __init__(self, identity: Identity, source_placement_id: Identity, target_placement_id: Identity,
                 source_terminal: Optional[str] = None, target_terminal: Optional[str] = None,
                 color: Optional[str] = None):
        self.identity: Identity = identity
        self.source_placement_id: Identity = source_placement_id
        self.target_placement_id: Identity = target_placement_id
        self.source_terminal: Optional[str] = source_terminal or None
        self.target_terminal: Optional[str] = target_terminal or None
        self.color: Optional[str] = color or None

    @property
    def effective_source_terminal(self) -> str:
        return self.source_terminal or DEFAULT_SOURCE_TERMINAL

    @property
    def effective_target_terminal(self) -> str:
        return self.target_terminal or DEFAULT_TARGET_TERMINAL

    def touches(self, placement_id: Identity) -> bool:
        return self.source_placement_id == placement_id or self.target_placement_id == placement_id

    def __str__(self) -> str:
        return (f"{self.source_placement_id}[{self.effective_source_terminal}] <--> "
                f"{self.target_placement_id}[{self.effective_target_terminal}]")

    def __repr__(self) -> str:
        return (f"WireConnection(identity={self.identity!r}, source={self.source_placement_id!r}, "
                f"target={self.target_placement_id!r}, color={self.color!r})")

    def copy(self) -> 'WireConnection':
        return WireConnection(self.identity, self.source_placement_id, self.target_placement_id,
                              self.source_terminal, self.target_terminal, self.color)

    def with_endpoints(self, source: Identity, target: Identity) -> 'WireConnection':
        return WireConnection(self.identity, source, target,
                              self.source_terminal, self.target_terminal, self.color)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": identity_to_dict(self.identity),
            "sourceEquipmentId": identity_to_dict(self.source_placement_id),
            "targetEquipmentId": identity_to_dict(self.target_placement_id),
            "sourceHandle": self.source_terminal,
            "targetHandle": self.target_terminal,
            "wireColor": self.color,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WireConnection':
        raw_id = data.get("id")
        return cls(
            _identity_from_wire(raw_id) if raw_id else LocalId.new(),
            _identity_from_wire(data.get("sourceEquipmentId")),
            _identity_from_wire(data.get("targetEquipmentId")),
            data.get("sourceHandle"),
            data.get("targetHandle"),
            data.get("wireColor"),
        )


class ExperimentStep:
    """实验步骤（外部提供）。评分只用到步骤数量。"""
    __slots__ = ['step_number', 'description', 'procedure', 'min_tolerance', 'max_tolerance', 'unit']

    def __init__(self, step_number: int, description: str, procedure: Optional[str] = None,
                 min_tolerance: Optional[float] = None, max_tolerance: Optional[float] = None,
                 unit: Optional[str] = None):
        self.step_number: int = int(step_number)
        self.description: str = description
        self.procedure: Optional[str] = procedure
        self.min_tolerance: Optional[float] = min_tolerance
        self.max_tolerance: Optional[float] = max_tolerance
        self.unit: Optional[str] = unit

    def within_tolerance(self, value: float) -> bool:
        """测量值是否落在 [min_tolerance, max_tolerance] 内；缺失的边界视为无限。"""
        if self.min_tolerance is not None and value < self.min_tolerance:
            return False
        if self.max_tolerance is not None and value > self.max_tolerance:
            return False
        return True

    def __repr__(self) -> str:
        return f"ExperimentStep(step_number={self.step_number}, description={self.description!r})"

    def copy(self) -> 'ExperimentStep':
        return ExperimentStep(self.step_number, self.description, self.procedure,
                              self.min_tolerance, self.max_tolerance, self.unit)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepNumber": self.step_number,
            "stepDescription": self.description,
            "procedure": self.procedure,
            "minTolerance": self.min_tolerance,
            "maxTolerance": self.max_tolerance,
            "unit": self.unit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExperimentStep':
        return cls(
            data.get("stepNumber", 0),
            data.get("stepDescription", ""),
            data.get("procedure"),
            data.get("minTolerance"),
            data.get("maxTolerance"),
            data.get("unit"),
        )

# CogniLab/cognilab/circuit_domain/circuit.py
import copy
import logging
from typing import Dict, Tuple, Optional, Any, List, Iterable, Mapping

from .catalog import EquipmentCatalog
from .components import PlacementInstance, WireConnection, DEFAULT_WIRE_COLOR
from .errors import NotFound, UnknownEndpoint, SelfConnection
from .identity import Identity, LocalId, PersistedId

logger = logging.getLogger(__name__)


class CompositionSnapshot:
    """某一时刻电路的深拷贝，供评分和保存使用，之后的编辑不会影响它。"""
    __slots__ = ['placements', 'connections']

    def __init__(self, placements: List[PlacementInstance], connections: List[WireConnection]):
        self.placements: List[PlacementInstance] = placements
        self.connections: List[WireConnection] = connections

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CompositionSnapshot':
        return cls(
            [PlacementInstance.from_dict(item) for item in data.get("placements") or []],
            [WireConnection.from_dict(item) for item in data.get("connections") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "placements": [p.to_dict() for p in self.placements],
            "connections": [c.to_dict() for c in self.connections],
        }


class Composition:
    """
    一个实验的电路：放置的设备实例集合 + 它们之间的导线集合。

    所有修改都通过本类的方法完成，保证不变量：
        - 每根导线的两个端点都是当前存在的设备实例；
        - 导线不能连接设备自身；
        - 删除设备时，相关导线在同一个方法内一并删除。

    Attributes:
        catalog (EquipmentCatalog): 设备目录，用于校验设备类型并提供默认配置。
        default_wire_color (str): 未指定颜色时新导线使用的颜色。
    """
    def __init__(self, catalog: EquipmentCatalog, default_wire_color: str = DEFAULT_WIRE_COLOR):
        logger.info("[Composition] 初始化电路实体...")
        self.catalog: EquipmentCatalog = catalog
        self.default_wire_color: str = default_wire_color
        # dict 保持插入顺序，保存时按此顺序提交
        self._placements: Dict[Identity, PlacementInstance] = {}
        self._connections: Dict[Identity, WireConnection] = {}

    # ---- 查询 ----

    @property
    def placements(self) -> List[PlacementInstance]:
        return list(self._placements.values())

    @property
    def connections(self) -> List[WireConnection]:
        return list(self._connections.values())

    def get_placement(self, placement_id: Identity) -> PlacementInstance:
        placement = self._placements.get(placement_id)
        if placement is None:
            raise NotFound("设备", placement_id)
        return placement

    def get_connection(self, connection_id: Identity) -> WireConnection:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise NotFound("连线", connection_id)
        return connection

    def has_placement(self, placement_id: Identity) -> bool:
        return placement_id in self._placements

    def connections_for(self, placement_id: Identity) -> List[WireConnection]:
        return [c for c in self._connections.values() if c.touches(placement_id)]

    # ---- 设备操作 ----

    def add_placement(self, equipment_type_id: str, x: float, y: float) -> PlacementInstance:
        """
        在画布上放置一个新设备。

        Returns:
            PlacementInstance: 新实例，带新的临时身份，配置从设备类型模板深拷贝而来，
                               depth_order 等于放置前的设备数量。

        Raises:
            UnknownEquipmentType: 设备类型不在目录中。
        """
        equipment_type = self.catalog.get(equipment_type_id)
        placement = PlacementInstance(
            LocalId.new(),
            equipment_type.id,
            x,
            y,
            depth_order=len(self._placements),
            configuration=copy.deepcopy(equipment_type.default_configuration),
            equipment_name=equipment_type.name,
        )
        self._placements[placement.identity] = placement
        logger.debug(f"[Composition] 设备 '{placement.identity}' ({equipment_type.id}) 已添加到电路。")
        return placement

    def load_placement(self, placement: PlacementInstance) -> PlacementInstance:
        """从存储加载已有设备。已加载的设备不再校验目录（目录可能已变更）。"""
        if placement.identity in self._placements:
            raise ValueError(f"设备 ID '{placement.identity}' 已被占用。")
        self._placements[placement.identity] = placement
        return placement

    def move_placement(self, placement_id: Identity, x: float, y: float) -> PlacementInstance:
        placement = self.get_placement(placement_id)
        placement.x = float(x)
        placement.y = float(y)
        return placement

    def configure_placement(self, placement_id: Identity, configuration: Mapping[str, Any]) -> PlacementInstance:
        """整体替换设备配置（不做合并）。"""
        placement = self.get_placement(placement_id)
        placement.configuration = copy.deepcopy(dict(configuration))
        logger.debug(f"[Composition] 设备 '{placement_id}' 的配置已替换。")
        return placement

    def remove_placement(self, placement_id: Identity) -> Tuple[PlacementInstance, int]:
        """
        删除设备及其所有相关连线。

        Returns:
            Tuple[PlacementInstance, int]: 被删除的设备和被删除的连线数量。

        Raises:
            NotFound: 设备不存在。
        """
        placement = self.get_placement(placement_id)
        attached = self.connections_for(placement_id)
        for connection in attached:
            del self._connections[connection.identity]
        del self._placements[placement_id]
        removed_connections_count = len(attached)
        logger.debug(f"[Composition] 设备 '{placement_id}' 及其相关 {removed_connections_count} 个连接已从电路中移除。")
        return placement, removed_connections_count

    # ---- 连线操作 ----

    def connect(self, source_id: Identity, target_id: Identity,
                source_terminal: Optional[str] = None, target_terminal: Optional[str] = None,
                color: Optional[str] = None) -> WireConnection:
        """
        连接两个设备。

        Raises:
            SelfConnection: source_id == target_id。
            UnknownEndpoint: 任一端点不是当前电路中的设备。
        """
        if source_id == target_id:
            logger.warning(f"[Composition] 尝试将设备 '{source_id}' 连接到自身。")
            raise SelfConnection(source_id)
        for endpoint in (source_id, target_id):
            if endpoint not in self._placements:
                logger.warning(f"[Composition] 尝试连接时，设备 '{endpoint}' 不存在。")
                raise UnknownEndpoint(endpoint)

        connection = WireConnection(LocalId.new(), source_id, target_id,
                                    source_terminal, target_terminal, color or self.default_wire_color)
        self._connections[connection.identity] = connection
        logger.debug(f"[Composition] 添加了连接: {connection}。")
        return connection

    def load_connection(self, connection: WireConnection) -> WireConnection:
        """从存储加载已有连线，端点必须已加载。"""
        if connection.source_placement_id == connection.target_placement_id:
            raise SelfConnection(connection.source_placement_id)
        for endpoint in (connection.source_placement_id, connection.target_placement_id):
            if endpoint not in self._placements:
                raise UnknownEndpoint(endpoint)
        self._connections[connection.identity] = connection
        return connection

    def disconnect(self, connection_id: Identity) -> WireConnection:
        connection = self.get_connection(connection_id)
        del self._connections[connection_id]
        logger.debug(f"[Composition] 断开了连接: {connection}。")
        return connection

    def replace_connections(self, connections: Iterable[WireConnection]) -> None:
        """
        整体替换连线集合。不针对当前设备集合重新校验端点，
        仅供保存后的身份改写使用。
        """
        self._connections = {c.identity: c for c in connections}

    # ---- 保存后的身份替换 ----

    def adopt_identities(self, identity_map: Mapping[Identity, PersistedId],
                         connection_identity_map: Optional[Mapping[Identity, PersistedId]] = None) -> None:
        """
        用保存返回的永久身份替换设备身份，并改写所有当前连线的端点。
        不在映射中的设备（例如保存期间新加的）和端点保持原样。
        connection_identity_map 不为空时同时替换连线自身的身份。
        """
        connection_identity_map = connection_identity_map or {}
        if not identity_map and not connection_identity_map:
            return
        renamed: Dict[Identity, PlacementInstance] = {}
        for identity, placement in self._placements.items():
            new_identity = identity_map.get(identity, identity)
            placement.identity = new_identity
            renamed[new_identity] = placement
        self._placements = renamed

        rewritten: List[WireConnection] = []
        for c in self._connections.values():
            updated = c.with_endpoints(identity_map.get(c.source_placement_id, c.source_placement_id),
                                       identity_map.get(c.target_placement_id, c.target_placement_id))
            updated.identity = connection_identity_map.get(c.identity, c.identity)
            rewritten.append(updated)
        self.replace_connections(rewritten)
        logger.debug(f"[Composition] 已采用 {len(identity_map)} 个设备永久身份, {len(connection_identity_map)} 个连线永久身份。")

    # ---- 其他 ----

    def snapshot(self) -> CompositionSnapshot:
        return CompositionSnapshot([p.copy() for p in self._placements.values()],
                                   [c.copy() for c in self._connections.values()])

    def get_state_description(self) -> str:
        """
        生成当前电路状态的文本描述。

        Returns:
            str: 多行字符串，按放置顺序列出设备和连线。
        """
        num_placements = len(self._placements)
        num_connections = len(self._connections)

        if num_placements == 0 and num_connections == 0:
            return "【当前电路状态】: 电路为空。"

        desc_lines = ["【当前电路状态】:"]
        desc_lines.append(f"  - 设备 ({num_placements}):")
        if self._placements:
            for placement in self._placements.values():
                desc_lines.append(f"    - {placement}")
        else:
            desc_lines.append("    (无)")

        desc_lines.append(f"  - 连接 ({num_connections}):")
        if self._connections:
            for connection in self._connections.values():
                desc_lines.append(f"    - {connection}")
        else:
            desc_lines.append("    (无)")

        return "\n".join(desc_lines)

    def clear(self) -> None:
        """清空电路，移除所有设备和连线。"""
        logger.info(f"[Composition] 正在清空电路状态 (移除 {len(self._placements)} 个设备, {len(self._connections)} 个连接)。")
        self._placements.clear()
        self._connections.clear()

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot().to_dict()

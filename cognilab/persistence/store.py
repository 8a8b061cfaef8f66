# CogniLab/cognilab/persistence/store.py
"""
存储协作方的接口定义。

保存流程依赖三个相互独立的操作：
    persist_placements(lab_id, placements) -> 按提交顺序返回的永久ID列表
    persist_connections(lab_id, connections) -> None（或按顺序返回的连线ID）
    persist_steps(lab_id, steps) -> None

persist_placements 返回的顺序必须与提交顺序一致，这是把临时身份对应到永久身份的唯一依据。
已经是永久身份的设备按“更新”处理，而不是新建，因此整个保存流程可以安全重试。
"""
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..circuit_domain.components import PlacementInstance, WireConnection, ExperimentStep
from ..circuit_domain.identity import Identity

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """存储层调用失败（网络、超时、服务端错误等）。"""


def _identity_field(identity: Identity) -> Dict[str, str]:
    # 临时身份不能被持久化，只提交永久身份
    return {"id": identity.value} if identity.is_persisted else {}


def placement_payload(placement: PlacementInstance) -> Dict[str, Any]:
    payload = _identity_field(placement.identity)
    payload.update({
        "equipmentId": placement.equipment_type_id,
        "positionX": placement.x,
        "positionY": placement.y,
        "positionZ": placement.depth_order,
        "configJson": copy.deepcopy(placement.configuration) or None,
    })
    return payload


def connection_payload(connection: WireConnection) -> Dict[str, Any]:
    payload = _identity_field(connection.identity)
    payload.update({
        "sourceEquipmentId": str(connection.source_placement_id),
        "targetEquipmentId": str(connection.target_placement_id),
        "sourceHandle": connection.source_terminal,
        "targetHandle": connection.target_terminal,
        "wireColor": connection.color,
    })
    return payload


class LabStore(ABC):
    """实验数据存储。实现类可以是内存、HTTP 或数据库。"""

    @abstractmethod
    async def persist_placements(self, lab_id: str, placements: List[PlacementInstance]) -> List[str]:
        """保存设备列表，按提交顺序返回永久ID。"""

    @abstractmethod
    async def persist_connections(self, lab_id: str, connections: List[WireConnection]) -> Optional[List[str]]:
        """保存连线列表。可以返回按提交顺序排列的连线ID，也可以返回 None。"""

    @abstractmethod
    async def persist_steps(self, lab_id: str, steps: List[ExperimentStep]) -> None:
        """保存实验步骤列表。"""

    @abstractmethod
    async def load_lab(self, lab_id: str) -> Dict[str, List[Dict[str, Any]]]:
        """
        读取实验数据。

        Returns:
            Dict: {"labEquipments": [...], "wireConnections": [...], "experimentSteps": [...]}
        """


class InMemoryLabStore(LabStore):
    """
    基于字典的存储实现，用于本地运行和测试。
    每次 persist_* 用提交的列表整体替换该实验原有的数据。
    """
    def __init__(self, id_prefix: str = "le"):
        self.id_prefix: str = id_prefix
        self._labs: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        self._counter: int = 0
        # 记录调用顺序，便于排查保存流程
        self.calls: List[str] = []

    def _lab(self, lab_id: str) -> Dict[str, List[Dict[str, Any]]]:
        return self._labs.setdefault(lab_id, {"labEquipments": [], "wireConnections": [], "experimentSteps": []})

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    async def persist_placements(self, lab_id: str, placements: List[PlacementInstance]) -> List[str]:
        self.calls.append("placements")
        stored: List[Dict[str, Any]] = []
        for placement in placements:
            record = placement_payload(placement)
            record.setdefault("id", self._next_id(self.id_prefix))
            record["equipmentName"] = placement.equipment_name
            stored.append(record)
        self._lab(lab_id)["labEquipments"] = stored
        logger.debug(f"[InMemoryLabStore] 实验 '{lab_id}' 保存了 {len(stored)} 个设备。")
        return [record["id"] for record in stored]

    async def persist_connections(self, lab_id: str, connections: List[WireConnection]) -> Optional[List[str]]:
        self.calls.append("connections")
        stored: List[Dict[str, Any]] = []
        for connection in connections:
            record = connection_payload(connection)
            record.setdefault("id", self._next_id("wire"))
            stored.append(record)
        self._lab(lab_id)["wireConnections"] = stored
        logger.debug(f"[InMemoryLabStore] 实验 '{lab_id}' 保存了 {len(stored)} 条连线。")
        return [record["id"] for record in stored]

    async def persist_steps(self, lab_id: str, steps: List[ExperimentStep]) -> None:
        self.calls.append("steps")
        self._lab(lab_id)["experimentSteps"] = [step.to_dict() for step in steps]

    async def load_lab(self, lab_id: str) -> Dict[str, List[Dict[str, Any]]]:
        return copy.deepcopy(self._lab(lab_id))

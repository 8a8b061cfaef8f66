# CogniLab/cognilab/circuit_domain/catalog.py
import logging
from typing import Dict, Iterable, Iterator, List, Any

from .components import EquipmentType
from .errors import UnknownEquipmentType

logger = logging.getLogger(__name__)


class EquipmentCatalog:
    """
    设备目录的只读视图。目录本身由外部维护，这里只负责按ID查找设备类型。
    迭代顺序与声明顺序一致。
    """
    def __init__(self, equipment_types: Iterable[EquipmentType] = ()):
        self._types: Dict[str, EquipmentType] = {}
        for equipment_type in equipment_types:
            if equipment_type.id in self._types:
                logger.error(f"[EquipmentCatalog] 设备类型 ID '{equipment_type.id}' 重复。")
                raise ValueError(f"设备类型 ID '{equipment_type.id}' 重复。")
            self._types[equipment_type.id] = equipment_type
        logger.debug(f"[EquipmentCatalog] 已加载 {len(self._types)} 种设备类型。")

    @classmethod
    def from_config(cls, entries: List[Dict[str, Any]]) -> 'EquipmentCatalog':
        """从 config.yaml 的 catalog.equipment 列表构建目录。"""
        if not isinstance(entries, list):
            raise ValueError(f"catalog.equipment 必须是列表, 实际为: {type(entries)}")
        return cls(EquipmentType.from_dict(entry) for entry in entries)

    def get(self, equipment_type_id: str) -> EquipmentType:
        """
        Raises:
            UnknownEquipmentType: 目录中不存在该类型。
        """
        equipment_type = self._types.get(equipment_type_id)
        if equipment_type is None:
            raise UnknownEquipmentType(equipment_type_id)
        return equipment_type

    def __contains__(self, equipment_type_id: object) -> bool:
        return equipment_type_id in self._types

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self) -> Iterator[EquipmentType]:
        return iter(list(self._types.values()))

    def to_list(self) -> List[Dict[str, Any]]:
        return [equipment_type.to_dict() for equipment_type in self._types.values()]

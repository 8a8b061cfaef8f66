# CogniLab/cognilab/session/reconciler.py
import logging
from typing import Dict, List, Optional, Sequence

from ..circuit_domain.components import PlacementInstance, WireConnection, ExperimentStep
from ..circuit_domain.identity import Identity, PersistedId
from ..persistence.store import LabStore

logger = logging.getLogger(__name__)

STEP_PLACEMENTS = "placements"
STEP_CONNECTIONS = "connections"
STEP_STEPS = "steps"


class IdentityCountMismatch(Exception):
    """存储层返回的ID数量与提交的设备数量不一致，无法按位置对应身份。"""

    def __init__(self, submitted: int, returned: int):
        self.submitted = submitted
        self.returned = returned
        super().__init__(f"提交了 {submitted} 个设备，但存储层返回了 {returned} 个ID。")


class SaveStepError(Exception):
    """
    保存流程中某一步失败。

    Attributes:
        step (str): 失败的步骤 ("placements" / "connections" / "steps")。
        cause (BaseException): 原始异常。
        identity_map (Dict[Identity, PersistedId]): 已经保存成功的设备身份映射。
                                                    设备已落库时调用方应采用它，保证重试不会重复创建。
        completed_steps (List[str]): 失败前已经完成的步骤。
    """
    def __init__(self, step: str, cause: BaseException,
                 identity_map: Optional[Dict[Identity, PersistedId]] = None,
                 completed_steps: Optional[List[str]] = None):
        self.step = step
        self.cause = cause
        self.identity_map: Dict[Identity, PersistedId] = identity_map or {}
        self.completed_steps: List[str] = completed_steps or []
        super().__init__(f"保存步骤 '{step}' 失败: {cause}")


class ReconciledSave:
    """一次完整保存的结果。"""
    __slots__ = ['placements', 'connections', 'steps', 'identity_map', 'connection_identity_map']

    def __init__(self, placements: List[PlacementInstance], connections: List[WireConnection],
                 steps: List[ExperimentStep], identity_map: Dict[Identity, PersistedId],
                 connection_identity_map: Dict[Identity, PersistedId]):
        self.placements = placements
        self.connections = connections
        self.steps = steps
        self.identity_map = identity_map
        self.connection_identity_map = connection_identity_map


def build_identity_map(submitted: Sequence[PlacementInstance], returned_ids: Sequence[str]) -> Dict[Identity, PersistedId]:
    """
    按位置把提交的设备和返回的永久ID配对。

    Raises:
        IdentityCountMismatch: 两个列表长度不同。
    """
    if len(submitted) != len(returned_ids):
        raise IdentityCountMismatch(len(submitted), len(returned_ids))
    return {placement.identity: PersistedId(new_id) for placement, new_id in zip(submitted, returned_ids)}


def rewrite_connections(connections: Sequence[WireConnection],
                        identity_map: Dict[Identity, PersistedId]) -> List[WireConnection]:
    """改写连线端点。映射中没有的端点保持原值，由后续校验暴露出来。"""
    rewritten: List[WireConnection] = []
    for connection in connections:
        source = identity_map.get(connection.source_placement_id, connection.source_placement_id)
        target = identity_map.get(connection.target_placement_id, connection.target_placement_id)
        if source is connection.source_placement_id and not source.is_persisted:
            logger.warning(f"[SaveReconciler] 连线 '{connection.identity}' 的源端点 '{source}' 未能映射到永久身份。")
        if target is connection.target_placement_id and not target.is_persisted:
            logger.warning(f"[SaveReconciler] 连线 '{connection.identity}' 的目标端点 '{target}' 未能映射到永久身份。")
        rewritten.append(connection.with_endpoints(source, target))
    return rewritten


class SaveReconciler:
    """
    把含有临时身份的电路保存为只含永久身份的电路。

    三次存储调用依次执行，不是事务：
        1. 保存设备，得到按顺序排列的永久ID，建立 旧身份 -> 永久身份 映射；
        2. 用映射改写连线端点后保存连线（必须在第 1 步成功之后）；
        3. 保存实验步骤。
    任何一步失败都抛出带步骤标记的 SaveStepError，之前完成的步骤不会回滚。
    """
    def __init__(self, store: LabStore):
        self.store: LabStore = store

    async def reconcile(self, lab_id: str,
                        placements: Sequence[PlacementInstance],
                        connections: Sequence[WireConnection],
                        steps: Sequence[ExperimentStep]) -> ReconciledSave:
        submitted = list(placements)
        logger.info(f"[SaveReconciler] 开始保存实验 '{lab_id}': {len(submitted)} 个设备, "
                    f"{len(connections)} 条连线, {len(steps)} 个步骤。")

        try:
            returned_ids = await self.store.persist_placements(lab_id, submitted)
            identity_map = build_identity_map(submitted, returned_ids)
        except Exception as e:
            logger.error(f"[SaveReconciler] 保存设备失败 (实验 '{lab_id}'): {e}", exc_info=True)
            raise SaveStepError(STEP_PLACEMENTS, e) from e

        persisted_placements = [p.with_identity(identity_map[p.identity]) for p in submitted]
        rewritten = rewrite_connections(connections, identity_map)
        completed = [STEP_PLACEMENTS]

        try:
            returned_connection_ids = await self.store.persist_connections(lab_id, rewritten)
        except Exception as e:
            logger.error(f"[SaveReconciler] 保存连线失败 (实验 '{lab_id}')，设备已保存: {e}", exc_info=True)
            raise SaveStepError(STEP_CONNECTIONS, e, identity_map, completed) from e
        completed.append(STEP_CONNECTIONS)

        connection_identity_map: Dict[Identity, PersistedId] = {}
        if returned_connection_ids is not None:
            if len(returned_connection_ids) == len(rewritten):
                connection_identity_map = {c.identity: PersistedId(new_id)
                                           for c, new_id in zip(rewritten, returned_connection_ids)}
                rewritten = [WireConnection(connection_identity_map[c.identity], c.source_placement_id,
                                            c.target_placement_id, c.source_terminal, c.target_terminal, c.color)
                             for c in rewritten]
            else:
                logger.warning(f"[SaveReconciler] 存储层返回了 {len(returned_connection_ids)} 个连线ID，"
                               f"与提交的 {len(rewritten)} 条不一致，连线保留原身份。")

        step_list = list(steps)
        try:
            await self.store.persist_steps(lab_id, step_list)
        except Exception as e:
            logger.error(f"[SaveReconciler] 保存实验步骤失败 (实验 '{lab_id}')，设备和连线已保存: {e}", exc_info=True)
            raise SaveStepError(STEP_STEPS, e, identity_map, completed) from e

        logger.info(f"[SaveReconciler] 实验 '{lab_id}' 保存完成。")
        return ReconciledSave(persisted_placements, rewritten, step_list, identity_map, connection_identity_map)

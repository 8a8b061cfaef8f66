# CogniLab/cognilab/session/manager.py
import logging
from typing import Any, Dict, Iterable, Optional

from ..circuit_domain.catalog import EquipmentCatalog
from ..circuit_domain.circuit import Composition, CompositionSnapshot
from ..circuit_domain.components import (
    PlacementInstance, WireConnection, ExperimentStep, DEFAULT_WIRE_COLOR,
)
from ..circuit_domain.errors import CompositionError
from ..circuit_domain.steps import StepPlan, StepProgress
from ..persistence.store import LabStore
from ..validation.scoring import ValidationReport, validate_composition
from .reconciler import SaveReconciler, SaveStepError, ReconciledSave

logger = logging.getLogger(__name__)


MODE_AUTHOR = "author"
MODE_PRACTICE = "practice"
SESSION_MODES = (MODE_AUTHOR, MODE_PRACTICE)


class SaveInProgress(RuntimeError):
    """上一次保存尚未完成时再次请求保存。"""


class SaveNotAllowed(RuntimeError):
    """练习会话不能保存：它的电路是学生的作答，保存会覆盖教师的参考实验。"""


class LabSession:
    """
    一个实验的编辑会话：持有电路、步骤列表和步骤完成情况，并负责保存。

    保存期间可以继续编辑（移动、添加等），这些修改只会包含在下一次保存中；
    保存进行中时再次保存会被拒绝 (SaveInProgress)，不会交错执行。
    练习模式 (practice) 的会话只用于作答和评分，保存会被拒绝 (SaveNotAllowed)。

    Attributes:
        lab_id (str): 实验ID。
        mode (str): "author" (教师编辑) 或 "practice" (学生练习)。
        composition (Composition): 当前电路。
        step_plan (StepPlan): 实验步骤。
        progress (StepProgress): 步骤完成情况。
        reference (Optional[CompositionSnapshot]): 教师的参考电路（学生端评分时使用）。
    """
    def __init__(self,
                 lab_id: str,
                 catalog: EquipmentCatalog,
                 store: LabStore,
                 default_wire_color: str = DEFAULT_WIRE_COLOR,
                 steps: Iterable[ExperimentStep] = (),
                 mode: str = MODE_AUTHOR):
        if not isinstance(lab_id, str) or not lab_id.strip():
            raise ValueError("lab_id 必须是有效的非空字符串。")
        if mode not in SESSION_MODES:
            raise ValueError(f"未知的会话模式: '{mode}'。可选值: {', '.join(SESSION_MODES)}。")
        logger.info(f"[LabSession] 初始化实验 '{lab_id}' 的编辑会话...")
        self.lab_id: str = lab_id.strip()
        self.mode: str = mode
        self.store: LabStore = store
        self.composition: Composition = Composition(catalog, default_wire_color=default_wire_color)
        self.step_plan: StepPlan = StepPlan(steps)
        self.progress: StepProgress = StepProgress(len(self.step_plan))
        self.reference: Optional[CompositionSnapshot] = None
        self._reconciler = SaveReconciler(store)
        self._save_in_flight: bool = False

    @property
    def is_saving(self) -> bool:
        return self._save_in_flight

    # ---- 步骤 ----

    def add_step(self) -> ExperimentStep:
        step = self.step_plan.add_step()
        self.progress.resize(len(self.step_plan))
        return step

    def update_step(self, index: int, **updates: Any) -> ExperimentStep:
        return self.step_plan.update_step(index, **updates)

    def remove_step(self, index: int) -> ExperimentStep:
        removed = self.step_plan.remove_step(index)
        self.progress.resize(len(self.step_plan))
        return removed

    # ---- 加载 / 保存 ----

    async def load(self) -> None:
        """从存储加载该实验已保存的电路和步骤，替换当前内容。"""
        data = await self.store.load_lab(self.lab_id)
        self.composition.clear()
        for record in data.get("labEquipments", []):
            self.composition.load_placement(PlacementInstance.from_dict(record))
        skipped = 0
        for record in data.get("wireConnections", []):
            try:
                self.composition.load_connection(WireConnection.from_dict(record))
            except CompositionError as e:
                skipped += 1
                logger.warning(f"[LabSession] 实验 '{self.lab_id}' 中的连线 {record.get('id')} 无法加载: {e}")
        self.step_plan = StepPlan(ExperimentStep.from_dict(s) for s in data.get("experimentSteps", []))
        self.progress = StepProgress(len(self.step_plan))
        logger.info(f"[LabSession] 实验 '{self.lab_id}' 加载完成: {len(self.composition.placements)} 个设备, "
                    f"{len(self.composition.connections)} 条连线 (跳过 {skipped} 条), {len(self.step_plan)} 个步骤。")

    async def load_reference(self) -> CompositionSnapshot:
        """加载教师保存的参考电路和步骤（学生端使用），当前电路保持为空白。"""
        data = await self.store.load_lab(self.lab_id)
        self.reference = CompositionSnapshot(
            [PlacementInstance.from_dict(r) for r in data.get("labEquipments", [])],
            [WireConnection.from_dict(r) for r in data.get("wireConnections", [])],
        )
        self.step_plan = StepPlan(ExperimentStep.from_dict(s) for s in data.get("experimentSteps", []))
        self.progress = StepProgress(len(self.step_plan))
        return self.reference

    async def save(self) -> ReconciledSave:
        """
        保存当前电路和步骤。

        Raises:
            SaveNotAllowed: 练习会话不能保存。
            SaveInProgress: 已有保存在进行中。
            SaveStepError: 某一步保存失败；已保存设备的永久身份仍会被采用。
        """
        if self.mode == MODE_PRACTICE:
            logger.warning(f"[LabSession] 实验 '{self.lab_id}' 的练习会话请求保存，已拒绝。")
            raise SaveNotAllowed(f"练习会话不能保存实验 '{self.lab_id}'，否则会覆盖参考电路和步骤。")
        if self._save_in_flight:
            logger.warning(f"[LabSession] 实验 '{self.lab_id}' 已有保存在进行中，拒绝新的保存请求。")
            raise SaveInProgress(f"实验 '{self.lab_id}' 的上一次保存尚未完成。")

        self._save_in_flight = True
        snapshot = self.composition.snapshot()
        steps = self.step_plan.steps
        try:
            result = await self._reconciler.reconcile(self.lab_id, snapshot.placements, snapshot.connections, steps)
        except SaveStepError as e:
            if e.identity_map:
                self.composition.adopt_identities(e.identity_map)
            raise
        finally:
            self._save_in_flight = False

        self.composition.adopt_identities(result.identity_map, result.connection_identity_map)
        return result

    # ---- 评分 ----

    def check_progress(self, reference: Optional[CompositionSnapshot] = None) -> ValidationReport:
        """用当前电路的快照和步骤完成情况对照参考电路评分。"""
        reference = reference or self.reference or CompositionSnapshot([], [])
        candidate = self.composition.snapshot()
        return validate_composition(
            candidate.placements,
            candidate.connections,
            reference.placements,
            reference.connections,
            self.progress.total_steps,
            self.progress.completed_count,
        )

    def get_state_description(self) -> str:
        return self.composition.get_state_description()

    def to_dict(self) -> Dict[str, Any]:
        data = self.composition.to_dict()
        data.update({
            "labId": self.lab_id,
            "mode": self.mode,
            "steps": self.step_plan.to_dicts(),
            "completedSteps": self.progress.completed_count,
            "isSaving": self._save_in_flight,
        })
        return data

# CogniLab/cognilab/circuit_domain/steps.py
import logging
from typing import Any, Dict, Iterable, List, Set

from .components import ExperimentStep

logger = logging.getLogger(__name__)

NEW_STEP_DESCRIPTION = "New step"

_UPDATABLE_FIELDS = ('description', 'procedure', 'min_tolerance', 'max_tolerance', 'unit')


class StepPlan:
    """教师编辑的实验步骤列表。步骤号始终为 1..n。"""

    def __init__(self, steps: Iterable[ExperimentStep] = ()):
        self._steps: List[ExperimentStep] = [s.copy() for s in steps]

    @property
    def steps(self) -> List[ExperimentStep]:
        return [s.copy() for s in self._steps]

    def __len__(self) -> int:
        return len(self._steps)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._steps):
            raise IndexError(f"步骤索引 {index} 超出范围 (共 {len(self._steps)} 步)。")

    def add_step(self) -> ExperimentStep:
        step = ExperimentStep(len(self._steps) + 1, NEW_STEP_DESCRIPTION, procedure="")
        self._steps.append(step)
        return step

    def update_step(self, index: int, **updates: Any) -> ExperimentStep:
        """
        更新一个步骤的字段。步骤号不可修改。

        Raises:
            IndexError: 索引越界。
            ValueError: 包含不支持的字段。
        """
        self._check_index(index)
        unknown = set(updates) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"不支持更新的步骤字段: {sorted(unknown)}")
        step = self._steps[index]
        for field_name, value in updates.items():
            setattr(step, field_name, value)
        return step

    def remove_step(self, index: int) -> ExperimentStep:
        """删除一个步骤，并把剩余步骤重新编号为 1..n。"""
        self._check_index(index)
        removed = self._steps.pop(index)
        for number, step in enumerate(self._steps, start=1):
            step.step_number = number
        logger.debug(f"[StepPlan] 删除步骤 {removed.step_number}，剩余 {len(self._steps)} 步。")
        return removed

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self._steps]


class StepProgress:
    """学生端的步骤完成情况，提供评分所需的 (completed, total)。"""

    def __init__(self, total_steps: int):
        if total_steps < 0:
            raise ValueError("total_steps 不能为负数。")
        self._total: int = total_steps
        self._completed: Set[int] = set()

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self._total:
            raise IndexError(f"步骤索引 {index} 超出范围 (共 {self._total} 步)。")

    @property
    def total_steps(self) -> int:
        return self._total

    @property
    def completed_count(self) -> int:
        return len(self._completed)

    @property
    def percent(self) -> float:
        if self._total == 0:
            return 0.0
        return self.completed_count / self._total * 100

    def is_complete(self, index: int) -> bool:
        return index in self._completed

    def toggle(self, index: int) -> bool:
        """切换完成状态，返回切换后的状态。"""
        self._check_index(index)
        if self.is_complete(index):
            self._completed.discard(index)
            return False
        self._completed.add(index)
        return True

    def mark_complete(self, index: int) -> None:
        self._check_index(index)
        self._completed.add(index)

    def resize(self, total_steps: int) -> None:
        """步骤列表变化后调整总数，丢弃越界的完成记录。"""
        if total_steps < 0:
            raise ValueError("total_steps 不能为负数。")
        self._total = total_steps
        self._completed = {i for i in self._completed if i < total_steps}

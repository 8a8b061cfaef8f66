# CogniLab/cognilab/validation/scoring.py
"""
学生电路评分。

把学生的电路（候选）与教师的电路（参考）做结构比较，不做任何电路仿真。
四项检查各占一分，互不短路：
    1. 设备数量
    2. 设备类型覆盖
    3. 连线数量（参考电路没有连线时为特殊分支）
    4. 步骤完成
score = round(100 * 通过数 / 检查数)，全部通过时 is_valid 为 True。
纯函数：相同输入总是得到相同的报告，不会抛出异常。
"""
import math
from typing import Any, Dict, List, Sequence

from ..circuit_domain.components import PlacementInstance, WireConnection

CHECK_QUANTITY = "quantity"
CHECK_TYPE_COVERAGE = "type_coverage"
CHECK_CONNECTIVITY = "connectivity"
CHECK_STEPS = "step_completion"


class CheckResult:
    """
    单项检查结果。informational 为 True 表示这是提示信息而不是成绩评语
    （仍计入 feedback，不计入 errors）。
    """
    __slots__ = ['name', 'passed', 'message', 'informational']

    def __init__(self, name: str, passed: bool, message: str, informational: bool = False):
        self.name = name
        self.passed = passed
        self.message = message
        self.informational = informational

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, CheckResult) and
                (self.name, self.passed, self.message, self.informational) ==
                (other.name, other.passed, other.message, other.informational))

    def __repr__(self) -> str:
        return f"CheckResult(name={self.name!r}, passed={self.passed}, message={self.message!r})"


class ValidationReport:
    __slots__ = ['is_valid', 'score', 'feedback', 'errors', 'checks']

    def __init__(self, is_valid: bool, score: int, feedback: List[str], errors: List[str],
                 checks: List[CheckResult]):
        self.is_valid = is_valid
        self.score = score
        self.feedback = feedback
        self.errors = errors
        self.checks = checks

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ValidationReport) and self.to_dict() == other.to_dict() \
            and self.checks == other.checks

    def __repr__(self) -> str:
        return f"ValidationReport(is_valid={self.is_valid}, score={self.score}, errors={self.errors!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "score": self.score,
            "feedback": list(self.feedback),
            "errors": list(self.errors),
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def check_quantity(candidate: Sequence[PlacementInstance], reference: Sequence[PlacementInstance]) -> CheckResult:
    placed, expected = len(candidate), len(reference)
    if placed >= expected:
        return CheckResult(CHECK_QUANTITY, True, f"✓ You have placed {placed} equipment items")
    return CheckResult(CHECK_QUANTITY, False, f"✗ Missing equipment: You have {placed}/{expected} items")


def check_type_coverage(candidate: Sequence[PlacementInstance], reference: Sequence[PlacementInstance]) -> CheckResult:
    placed_types = {p.equipment_type_id for p in candidate}
    missing_names: List[str] = []
    for placement in reference:
        if placement.equipment_type_id in placed_types:
            continue
        name = placement.equipment_name or placement.equipment_type_id
        if name not in missing_names:
            missing_names.append(name)
    if not missing_names:
        return CheckResult(CHECK_TYPE_COVERAGE, True, "✓ All required equipment types are present")
    return CheckResult(CHECK_TYPE_COVERAGE, False, f"✗ Missing equipment: {', '.join(missing_names)}")


def check_connectivity(candidate: Sequence[WireConnection], reference: Sequence[WireConnection]) -> CheckResult:
    wired, expected = len(candidate), len(reference)
    # 参考电路没有要求连线时，无论学生是否连线都算通过，只是提示语不同
    if expected == 0:
        if wired > 0:
            return CheckResult(CHECK_CONNECTIVITY, True, f"✓ You have created {wired} connections")
        return CheckResult(CHECK_CONNECTIVITY, True, "ℹ No connections created yet", informational=True)
    if wired >= expected:
        return CheckResult(CHECK_CONNECTIVITY, True, f"✓ You have {wired} connections")
    return CheckResult(CHECK_CONNECTIVITY, False, f"✗ Missing connections: You have {wired}/{expected} connections")


def check_steps(total_steps: int, completed_steps: int) -> CheckResult:
    if completed_steps == total_steps:
        return CheckResult(CHECK_STEPS, True, "✓ All steps completed")
    return CheckResult(CHECK_STEPS, False, f"✗ Complete all steps: {completed_steps}/{total_steps} done")


def validate_composition(candidate_placements: Sequence[PlacementInstance],
                         candidate_connections: Sequence[WireConnection],
                         reference_placements: Sequence[PlacementInstance],
                         reference_connections: Sequence[WireConnection],
                         total_steps: int,
                         completed_steps: int) -> ValidationReport:
    """对照参考电路给候选电路评分，返回 ValidationReport。"""
    checks = [
        check_quantity(candidate_placements, reference_placements),
        check_type_coverage(candidate_placements, reference_placements),
        check_connectivity(candidate_connections, reference_connections),
        check_steps(total_steps, completed_steps),
    ]
    passed = sum(1 for check in checks if check.passed)
    feedback = [check.message for check in checks if check.passed]
    errors = [check.message for check in checks if not check.passed]
    score = _round_half_up(100 * passed / len(checks))
    return ValidationReport(passed == len(checks), score, feedback, errors, checks)

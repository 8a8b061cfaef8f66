# CogniLab/cognilab/tools/editor_ops.py
import logging
import traceback
from typing import Dict, Any, TYPE_CHECKING

from .base import register_command
from ..circuit_domain.errors import CompositionError
from ..circuit_domain.identity import Identity, identity_from_dict, identity_to_dict
from ..session.manager import SaveInProgress, SaveNotAllowed
from ..session.reconciler import SaveStepError

if TYPE_CHECKING:
    from ..session.manager import LabSession

logger = logging.getLogger(__name__)

# 所有命令的第一个参数都是 LabSession，第二个参数是客户端提供的参数字典。
# 返回统一的结果结构: {"status": "success"/"failure", "message": ..., "data"?: ..., "error"?: {...}}

_IDENTITY_SCHEMA = {
    "type": "object",
    "properties": {"kind": {"type": "string", "enum": ["local", "persisted"]}, "value": {"type": "string"}},
    "required": ["kind", "value"],
}


def _success(message: str, data: Any = None) -> Dict[str, Any]:
    result: Dict[str, Any] = {"status": "success", "message": message}
    if data is not None:
        result["data"] = data
    return result


def _failure(message: str, error_type: str, error_code: str, technical_message: str,
             **extra: Any) -> Dict[str, Any]:
    error = {"error_type": error_type, "error_code": error_code, "technical_message": technical_message}
    error.update(extra)
    return {"status": "failure", "message": f"错误: {message}", "error": error}


def _composition_failure(e: CompositionError) -> Dict[str, Any]:
    return _failure(str(e), "COMPOSITION_ERROR", e.error_code, str(e))


def _step_index_failure(e: IndexError) -> Dict[str, Any]:
    return _failure(str(e), "USER_INPUT_VALIDATION_ERROR", "STEP_INDEX_OUT_OF_RANGE", str(e))


def _identity_arg(arguments: Dict[str, Any], key: str) -> Identity:
    # 缺失时抛 KeyError，格式错误时抛 ValueError，由 CommandExecutor 统一转换为参数错误
    return identity_from_dict(arguments[key])


@register_command(
    description="从设备目录中放置一个新设备到画布上。",
    parameters={"type": "object", "properties": {"equipment_type_id": {"type": "string"}, "x": {"type": "number"}, "y": {"type": "number"}}, "required": ["equipment_type_id", "x", "y"]}
)
def add_placement(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    equipment_type_id = arguments["equipment_type_id"]
    try:
        placement = session.composition.add_placement(equipment_type_id, float(arguments["x"]), float(arguments["y"]))
    except CompositionError as e:
        logger.warning(f"[Command-AddPlacement] 实验 '{session.lab_id}': {e}")
        return _composition_failure(e)
    logger.info(f"[Command-AddPlacement] 实验 '{session.lab_id}' 添加了设备 '{placement.identity}' ({equipment_type_id})。")
    return _success(f"操作成功: 已添加 {placement}。", placement.to_dict())


@register_command(
    description="移动一个已放置的设备。",
    parameters={"type": "object", "properties": {"placement_id": _IDENTITY_SCHEMA, "x": {"type": "number"}, "y": {"type": "number"}}, "required": ["placement_id", "x", "y"]}
)
def move_placement(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    placement_id = _identity_arg(arguments, "placement_id")
    try:
        placement = session.composition.move_placement(placement_id, float(arguments["x"]), float(arguments["y"]))
    except CompositionError as e:
        return _composition_failure(e)
    return _success(f"操作成功: 设备 '{placement_id}' 已移动。", placement.to_dict())


@register_command(
    description="整体替换一个设备的配置。",
    parameters={"type": "object", "properties": {"placement_id": _IDENTITY_SCHEMA, "configuration": {"type": "object"}}, "required": ["placement_id", "configuration"]}
)
def configure_placement(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    placement_id = _identity_arg(arguments, "placement_id")
    configuration = arguments["configuration"]
    if not isinstance(configuration, dict):
        raise ValueError("configuration 必须是对象。")
    try:
        placement = session.composition.configure_placement(placement_id, configuration)
    except CompositionError as e:
        return _composition_failure(e)
    return _success(f"操作成功: 设备 '{placement_id}' 的配置已更新。", placement.to_dict())


@register_command(
    description="删除一个设备以及与它相连的所有导线。",
    parameters={"type": "object", "properties": {"placement_id": _IDENTITY_SCHEMA}, "required": ["placement_id"]}
)
def remove_placement(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    placement_id = _identity_arg(arguments, "placement_id")
    try:
        removed, removed_connections_count = session.composition.remove_placement(placement_id)
    except CompositionError as e:
        return _composition_failure(e)
    logger.info(f"[Command-RemovePlacement] 实验 '{session.lab_id}' 删除了设备 '{placement_id}' 及 {removed_connections_count} 条连线。")
    return _success(
        f"操作成功: 已删除 {removed}，同时删除了 {removed_connections_count} 条连线。",
        {"placement": removed.to_dict(), "removedConnections": removed_connections_count},
    )


@register_command(
    description="用导线连接两个设备。",
    parameters={"type": "object", "properties": {"source_id": _IDENTITY_SCHEMA, "target_id": _IDENTITY_SCHEMA, "source_terminal": {"type": "string"}, "target_terminal": {"type": "string"}, "color": {"type": "string"}}, "required": ["source_id", "target_id"]}
)
def connect(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    source_id = _identity_arg(arguments, "source_id")
    target_id = _identity_arg(arguments, "target_id")
    try:
        connection = session.composition.connect(
            source_id, target_id,
            arguments.get("source_terminal"), arguments.get("target_terminal"), arguments.get("color"),
        )
    except CompositionError as e:
        logger.warning(f"[Command-Connect] 实验 '{session.lab_id}': {e}")
        return _composition_failure(e)
    return _success(f"操作成功: 已连接 {connection}。", connection.to_dict())


@register_command(
    description="删除一根导线。",
    parameters={"type": "object", "properties": {"connection_id": _IDENTITY_SCHEMA}, "required": ["connection_id"]}
)
def disconnect(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    connection_id = _identity_arg(arguments, "connection_id")
    try:
        connection = session.composition.disconnect(connection_id)
    except CompositionError as e:
        return _composition_failure(e)
    return _success(f"操作成功: 已断开 {connection}。", connection.to_dict())


@register_command(
    description="在步骤列表末尾添加一个新步骤。",
    parameters={"type": "object", "properties": {}}
)
def add_step(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    step = session.add_step()
    return _success(f"操作成功: 已添加步骤 {step.step_number}。", step.to_dict())


@register_command(
    description="更新一个步骤的描述、操作说明或容差。",
    parameters={"type": "object", "properties": {"index": {"type": "integer"}, "updates": {"type": "object"}}, "required": ["index", "updates"]}
)
def update_step(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    updates = arguments["updates"]
    if not isinstance(updates, dict):
        raise ValueError("updates 必须是对象。")
    try:
        step = session.update_step(int(arguments["index"]), **updates)
    except IndexError as e:
        return _step_index_failure(e)
    return _success(f"操作成功: 步骤 {step.step_number} 已更新。", step.to_dict())


@register_command(
    description="删除一个步骤，剩余步骤重新编号。",
    parameters={"type": "object", "properties": {"index": {"type": "integer"}}, "required": ["index"]}
)
def remove_step(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    try:
        removed = session.remove_step(int(arguments["index"]))
    except IndexError as e:
        return _step_index_failure(e)
    return _success(f"操作成功: 已删除步骤 '{removed.description}'。", {"steps": session.step_plan.to_dicts()})


@register_command(
    description="切换一个步骤的完成状态。",
    parameters={"type": "object", "properties": {"index": {"type": "integer"}}, "required": ["index"]}
)
def toggle_step(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    index = int(arguments["index"])
    try:
        completed = session.progress.toggle(index)
    except IndexError as e:
        return _step_index_failure(e)
    return _success(
        f"操作成功: 步骤 {index + 1} 已标记为{'完成' if completed else '未完成'}。",
        {"index": index, "completed": completed,
         "completedSteps": session.progress.completed_count, "totalSteps": session.progress.total_steps},
    )


@register_command(
    description="保存当前电路和步骤，临时身份替换为永久身份。",
    parameters={"type": "object", "properties": {}}
)
async def save(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    try:
        result = await session.save()
    except SaveNotAllowed as e:
        return _failure(str(e), "SAVE_ERROR", "SAVE_NOT_ALLOWED", str(e), mode=session.mode)
    except SaveInProgress as e:
        return _failure(str(e), "SAVE_ERROR", "SAVE_IN_PROGRESS", str(e))
    except SaveStepError as e:
        logger.error(f"[Command-Save] 实验 '{session.lab_id}' 保存失败于步骤 '{e.step}': {e.cause}")
        failure = _failure(str(e), "SAVE_ERROR", "SAVE_STEP_FAILED", str(e.cause),
                           step=e.step, completed_steps=e.completed_steps)
        failure["retryable"] = True
        return failure
    except Exception as e:
        logger.error(f"[Command-Save] 实验 '{session.lab_id}' 保存时发生未知错误: {e}", exc_info=True)
        return _failure("保存时发生未知内部错误。", "UNEXPECTED_COMMAND_ERROR", "SAVE_UNEXPECTED_FAILURE",
                        str(e), exception_details=traceback.format_exc(limit=3))
    identity_map = [
        {"from": identity_to_dict(old), "to": identity_to_dict(new)}
        for old, new in result.identity_map.items()
    ]
    return _success(
        f"操作成功: 已保存 {len(result.placements)} 个设备, {len(result.connections)} 条连线, {len(result.steps)} 个步骤。",
        {"identityMap": identity_map, "composition": session.composition.to_dict()},
    )


@register_command(
    description="对照参考电路检查当前进度并评分。",
    parameters={"type": "object", "properties": {}}
)
def check_progress(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    report = session.check_progress()
    return _success(f"评分完成: {report.score}%。", report.to_dict())


@register_command(
    description="返回当前电路状态的文本描述。",
    parameters={"type": "object", "properties": {}}
)
def describe(session: 'LabSession', arguments: Dict[str, Any]) -> Dict[str, Any]:
    return _success(session.get_state_description(), session.to_dict())

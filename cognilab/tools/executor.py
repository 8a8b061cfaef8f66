# CogniLab/cognilab/tools/executor.py
import asyncio
import inspect
import logging
import traceback
from uuid import uuid4
from typing import List, Dict, Any, Optional, Callable, TYPE_CHECKING

from . import editor_ops
from .base import collect_commands

if TYPE_CHECKING:
    from ..session.manager import LabSession

logger = logging.getLogger(__name__)


class CommandExecutor:
    """
    CommandExecutor (命令执行器)
    根据命令名称把客户端请求分发到 editor_ops 中注册的命令，处理同步/异步调用、
    参数错误，以及可重试失败（例如保存过程中的存储错误）的重试。
    """
    def __init__(self,
                 session: 'LabSession',
                 max_retries: int = 0,
                 retry_delay_seconds: float = 1.0):
        """
        Args:
            session (LabSession): 命令作用的编辑会话。
            max_retries (int): 结果带 "retryable" 标记的失败命令最多重试次数。
            retry_delay_seconds (float): 重试间隔 (秒)。
        """
        if not hasattr(session, 'composition'):
            raise TypeError("CommandExecutor 需要一个具有 'composition' 属性的 LabSession。")
        self.session: 'LabSession' = session
        self.max_retries: int = max(0, max_retries)
        self.retry_delay_seconds: float = max(0.0, retry_delay_seconds)
        self._commands: Dict[str, Callable] = collect_commands(editor_ops)
        logger.info(f"[CommandExecutor] 初始化命令执行器 (实验 '{session.lab_id}')，可用命令 {len(self._commands)} 个，"
                    f"可重试失败最多重试 {self.max_retries} 次。")

    def list_commands(self) -> List[Dict[str, Any]]:
        return [command._command_schema for command in self._commands.values()]

    def is_async_command(self, name: str) -> bool:
        command = self._commands.get(name)
        return command is not None and inspect.iscoroutinefunction(command)

    async def _invoke(self, command: Callable, arguments: Dict[str, Any]) -> Dict[str, Any]:
        if inspect.iscoroutinefunction(command):
            return await command(self.session, arguments)
        return command(self.session, arguments)

    async def execute(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        执行一条命令。

        Returns:
            Dict[str, Any]: {"status": ..., "message": ..., "data"?: ..., "error"?: ...}
        """
        call_id = f"cmd_{str(uuid4())[:8]}"
        arguments = arguments or {}
        command = self._commands.get(name)
        if command is None:
            logger.warning(f"[{call_id}-CommandExecutor] 未知命令 '{name}'。")
            return {
                "status": "failure",
                "message": f"错误: 未知命令 '{name}'。",
                "error": {"error_type": "COMMAND_IMPLEMENTATION_ERROR", "error_code": "COMMAND_NOT_FOUND",
                          "technical_message": f"No registered command named '{name}'."},
            }
        if not isinstance(arguments, dict):
            return {
                "status": "failure",
                "message": "错误: 命令参数必须是对象。",
                "error": {"error_type": "USER_INPUT_VALIDATION_ERROR", "error_code": "INVALID_ARGUMENTS",
                          "technical_message": f"arguments must be an object, got {type(arguments).__name__}"},
            }

        logger.debug(f"[{call_id}-CommandExecutor] 执行命令 '{name}'，参数: {arguments}")
        result: Dict[str, Any] = {}
        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                logger.warning(f"[{call_id}-CommandExecutor] 命令 '{name}' 失败，{self.retry_delay_seconds} 秒后进行第 {attempt}/{self.max_retries} 次重试...")
                await asyncio.sleep(self.retry_delay_seconds)
            try:
                result = await self._invoke(command, arguments)
            except (KeyError, TypeError, ValueError) as e:
                # 参数缺失或格式错误属于结构性问题，重试没有意义
                logger.warning(f"[{call_id}-CommandExecutor] 命令 '{name}' 参数错误: {e!r}")
                return {
                    "status": "failure",
                    "message": f"错误: 命令 '{name}' 的参数无效。",
                    "error": {"error_type": "USER_INPUT_VALIDATION_ERROR", "error_code": "INVALID_ARGUMENTS",
                              "technical_message": f"{type(e).__name__}: {e}"},
                }
            except Exception as e:
                logger.error(f"[{call_id}-CommandExecutor] 命令 '{name}' 执行期间发生意外内部错误: {e}", exc_info=True)
                return {
                    "status": "failure",
                    "message": f"错误: 执行命令 '{name}' 时发生内部错误。",
                    "error": {"error_type": "UNEXPECTED_COMMAND_ERROR", "error_code": "UNEXPECTED_COMMAND_FAILURE",
                              "technical_message": str(e), "exception_details": traceback.format_exc(limit=3)},
                }
            if result.get("status") == "success" or not result.get("retryable"):
                break

        logger.info(f"[{call_id}-CommandExecutor] 命令 '{name}' 执行完毕。状态: {result.get('status', 'N/A')}。")
        return result

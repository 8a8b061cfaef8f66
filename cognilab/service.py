# CogniLab/cognilab/service.py
import asyncio
import logging
from typing import Dict, Optional, Any

from .circuit_domain.catalog import EquipmentCatalog
from .circuit_domain.components import DEFAULT_WIRE_COLOR
from .persistence.store import LabStore, InMemoryLabStore
from .persistence.http_store import HttpLabStore
from .session.manager import LabSession, SESSION_MODES, MODE_AUTHOR, MODE_PRACTICE
from .tools.executor import CommandExecutor
from .utils.config_loader import ConfigLoader
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

STORAGE_URL_ENV = "COGNILAB_STORAGE_URL"
STORAGE_TOKEN_ENV = "COGNILAB_STORAGE_TOKEN"


def build_catalog(config_loader: ConfigLoader) -> EquipmentCatalog:
    entries = config_loader.get_config("catalog.equipment", [])
    if not entries:
        logger.warning("[LabService] 配置中没有 catalog.equipment，设备目录为空。")
        return EquipmentCatalog()
    return EquipmentCatalog.from_config(entries)


def build_store(config_loader: ConfigLoader) -> LabStore:
    """
    根据 app_settings.storage 选择存储实现。
    环境变量 COGNILAB_STORAGE_URL 存在时总是使用 HTTP 存储。
    """
    backend = str(config_loader.get_config("app_settings.storage.backend", "memory")).lower()
    base_url = config_loader.get_env_var(STORAGE_URL_ENV) or config_loader.get_config("app_settings.storage.base_url")
    if base_url and (backend == "http" or config_loader.get_env_var(STORAGE_URL_ENV)):
        return HttpLabStore(
            base_url=base_url,
            api_token=config_loader.get_env_var(STORAGE_TOKEN_ENV),
            timeout_seconds=config_loader.get_typed("app_settings.storage.timeout_seconds", float, 30.0),
        )
    if backend == "http":
        raise ValueError(f"存储后端为 'http' 但未配置 base_url (app_settings.storage.base_url 或 {STORAGE_URL_ENV})。")
    if backend != "memory":
        raise ValueError(f"未知的存储后端: '{backend}'。可选值: memory, http。")
    logger.info("[LabService] 使用内存存储。数据在进程退出后丢失。")
    return InMemoryLabStore()


class LabSessionHandle:
    """一个客户端会话：编辑会话 + 命令执行器 + 串行化命令的锁。"""
    __slots__ = ['session', 'executor', 'lock']

    def __init__(self, session: LabSession, executor: CommandExecutor):
        self.session = session
        self.executor = executor
        self.lock = asyncio.Lock()


class LabService:
    """
    LabService (实验编辑服务)
    读取配置，构建设备目录和存储客户端，并按会话ID管理编辑会话。
    """
    def __init__(self,
                 config_yaml_path: str = "config.yaml",
                 dotenv_path: Optional[str] = None,
                 catalog: Optional[EquipmentCatalog] = None,
                 store: Optional[LabStore] = None,
                 configure_logging: bool = True):
        self.config_loader = ConfigLoader(yaml_config_path=config_yaml_path, dotenv_path=dotenv_path)

        if configure_logging:
            log_level_console_str: str = self.config_loader.get_config("app_settings.logging.log_level_console", "INFO")
            log_level_file_str: str = self.config_loader.get_config("app_settings.logging.log_level_file", "DEBUG")
            log_dir_cfg: Optional[str] = self.config_loader.get_config("app_settings.logging.log_dir", None)
            setup_logging(
                console_log_level=getattr(logging, str(log_level_console_str).upper(), logging.INFO),
                file_log_level=getattr(logging, str(log_level_file_str).upper(), logging.DEBUG),
                log_dir_override=log_dir_cfg,
            )

        self.catalog: EquipmentCatalog = catalog if catalog is not None else build_catalog(self.config_loader)
        self.store: LabStore = store if store is not None else build_store(self.config_loader)
        self.default_wire_color: str = self.config_loader.get_config("app_settings.wiring.default_color", DEFAULT_WIRE_COLOR)
        self.command_retries: int = self.config_loader.get_typed("app_settings.commands.max_retries", int, 0)
        self.command_retry_delay: float = self.config_loader.get_typed("app_settings.commands.retry_delay_seconds", float, 1.0)
        self._sessions: Dict[str, LabSessionHandle] = {}
        logger.info(f"[LabService] 初始化完成。设备类型 {len(self.catalog)} 种，存储: {type(self.store).__name__}，"
                    f"默认导线颜色: {self.default_wire_color}。")

    def get_session(self, session_id: str) -> Optional[LabSessionHandle]:
        return self._sessions.get(session_id)

    async def open_session(self, session_id: str, lab_id: str, mode: str = MODE_AUTHOR) -> LabSessionHandle:
        """
        创建或复用一个会话。

        Args:
            mode (str): "author" 加载已保存的电路进行编辑；
                        "practice" 加载参考电路用于评分，当前电路从空白开始。

        Raises:
            ValueError: 模式未知，或同一实验的已有会话以另一种模式打开。
        """
        if mode not in SESSION_MODES:
            raise ValueError(f"未知的会话模式: '{mode}'。可选值: {', '.join(SESSION_MODES)}。")
        handle = self.get_session(session_id)
        if handle is not None and handle.session.lab_id == lab_id:
            if handle.session.mode != mode:
                raise ValueError(f"会话 {session_id} 已以 '{handle.session.mode}' 模式打开实验 '{lab_id}'，"
                                 f"不能以 '{mode}' 模式复用。")
            logger.info(f"[LabService] 复用会话 {session_id} (实验 '{lab_id}', 模式: {mode})。")
            return handle

        session = LabSession(lab_id, self.catalog, self.store,
                             default_wire_color=self.default_wire_color, mode=mode)
        if mode == MODE_PRACTICE:
            await session.load_reference()
        else:
            await session.load()
        handle = LabSessionHandle(
            session,
            CommandExecutor(session, max_retries=self.command_retries, retry_delay_seconds=self.command_retry_delay),
        )
        self._sessions[session_id] = handle
        logger.info(f"[LabService] 为会话 {session_id} 打开实验 '{lab_id}' (模式: {mode})。")
        return handle

    def close_session(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info(f"[LabService] 会话 {session_id} 已关闭。")

    async def execute(self, session_id: str, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        在会话锁内执行一条同步编辑命令，同一会话的编辑按到达顺序执行。
        异步命令 (保存) 不持有锁，保存期间编辑仍可继续；重复保存由 LabSession 拒绝。
        """
        handle = self.get_session(session_id)
        if handle is None:
            raise KeyError(f"会话 '{session_id}' 不存在。")
        if handle.executor.is_async_command(name):
            return await handle.executor.execute(name, arguments)
        async with handle.lock:
            return await handle.executor.execute(name, arguments)

    async def aclose(self) -> None:
        self._sessions.clear()
        if isinstance(self.store, HttpLabStore):
            await self.store.aclose()

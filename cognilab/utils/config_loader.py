# CogniLab/cognilab/utils/config_loader.py
import os
import yaml
import logging
from typing import Any, Callable, Optional, Dict, TypeVar
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


class ConfigLoader:
    """
    ConfigLoader (配置加载器)
    进程内单例：先把 .env 载入环境变量，再读取 config.yaml。
    编辑服务的设置位于 app_settings 下，设备目录位于 catalog.equipment 下。
    """
    _instance: Optional["ConfigLoader"] = None
    _initialized_once: bool = False

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self,
                 yaml_config_path: str = "config.yaml",
                 dotenv_path: Optional[str] = None,
                 reload_config: bool = False):
        requested_yaml = os.path.abspath(yaml_config_path)
        if ConfigLoader._initialized_once and not reload_config:
            if requested_yaml != self.yaml_config_path:
                logger.warning(f"[ConfigLoader] 已使用 '{self.yaml_config_path}' 初始化，忽略新的路径 '{requested_yaml}'。"
                               f"需要切换时请传入 reload_config=True 或先调用 ConfigLoader.reset()。")
            return

        self.yaml_config_path: str = requested_yaml
        self.dotenv_path: Optional[str] = os.path.abspath(dotenv_path) if dotenv_path else None
        self.config: Dict[str, Any] = {}
        self.reload_all_configs()
        ConfigLoader._initialized_once = True

    @classmethod
    def reset(cls) -> None:
        """丢弃单例，下一次 ConfigLoader() 会重新读取文件。"""
        cls._instance = None
        cls._initialized_once = False

    def reload_all_configs(self) -> None:
        """重新读取 .env 和 YAML。"""
        self._load_dotenv_file()
        self.config = self._read_yaml(self.yaml_config_path)
        logger.info(f"[ConfigLoader] 配置已加载 (yaml: '{self.yaml_config_path}', 顶层键: {sorted(self.config)})。")

    def _load_dotenv_file(self) -> None:
        if self.dotenv_path is None:
            found = load_dotenv(override=True)
            logger.debug(f"[ConfigLoader] 在默认位置查找 .env: {'已加载' if found else '未找到'}。")
            return
        if not os.path.isfile(self.dotenv_path):
            # 显式指定的路径不存在时不回退到默认位置
            logger.warning(f"[ConfigLoader] 指定的 .env 文件 '{self.dotenv_path}' 不存在，跳过。")
            return
        if load_dotenv(dotenv_path=self.dotenv_path, override=True):
            logger.info(f"[ConfigLoader] 已从 '{self.dotenv_path}' 加载环境变量。")
        else:
            logger.warning(f"[ConfigLoader] '{self.dotenv_path}' 中没有可加载的变量。")

    @staticmethod
    def _read_yaml(path: str) -> Dict[str, Any]:
        if not os.path.isfile(path):
            logger.error(f"[ConfigLoader] 找不到 YAML 配置 '{path}'，所有设置使用默认值。")
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"[ConfigLoader] 解析 '{path}' 失败: {e}", exc_info=True)
            return {}
        except OSError as e:
            logger.error(f"[ConfigLoader] 读取 '{path}' 失败: {e}", exc_info=True)
            return {}
        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            logger.error(f"[ConfigLoader] '{path}' 的顶层不是映射 (而是 {type(loaded).__name__})，配置视为空。")
            return {}
        return loaded

    def get_config(self, key_path: str, default: Any = None) -> Any:
        """按点分路径取值，例如 'app_settings.storage.backend'。任何一段缺失都返回 default。"""
        node: Any = self.config
        for segment in key_path.split('.'):
            if not isinstance(node, dict) or segment not in node:
                return default
            node = node[segment]
        return node

    def get_typed(self, key_path: str, cast: Callable[[Any], T], default: T) -> T:
        """
        取值并转换类型 (例如重试次数、超时秒数)。
        值缺失或无法转换时记录警告并返回 default。
        """
        raw = self.get_config(key_path, _MISSING)
        if raw is _MISSING or raw is None:
            return default
        try:
            return cast(raw)
        except (TypeError, ValueError):
            logger.warning(f"[ConfigLoader] 配置项 '{key_path}' 的值 {raw!r} 无法转换为 {getattr(cast, '__name__', cast)}，"
                           f"使用默认值 {default!r}。")
            return default

    def get_env_var(self, var_name: str, default: Optional[str] = None) -> Optional[str]:
        """读取环境变量；空字符串视为未设置。"""
        value = os.environ.get(var_name)
        return value if value else default

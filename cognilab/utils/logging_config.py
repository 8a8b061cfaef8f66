# CogniLab/cognilab/utils/logging_config.py
import os
import sys
import logging
from datetime import datetime
from typing import Optional
import traceback

LOG_DIR = "CogniLabLogs"  # 默认日志目录，可以被 app_settings.logging.log_dir 覆盖
console_handler: Optional[logging.StreamHandler] = None
file_handler: Optional[logging.FileHandler] = None


def setup_logging(
    console_log_level: int = logging.INFO,
    file_log_level: int = logging.DEBUG,
    log_dir_override: Optional[str] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configures the root logger and the 'cognilab' application logger.
    Calling it again replaces the handlers installed by the previous call.

    Args:
        console_log_level (int): The logging level for the console.
        file_log_level (int): The logging level for the file.
        log_dir_override (Optional[str]): If provided, overrides the default LOG_DIR.
        enable_file_logging (bool): When False only the console handler is installed.

    Returns:
        logging.Logger: The configured logger instance for the 'cognilab' application.
    """
    global console_handler, file_handler

    current_log_dir = log_dir_override or LOG_DIR
    log_format = '%(asctime)s - %(name)s - %(levelname)s [%(module)s.%(funcName)s:%(lineno)d] - %(message)s'
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger()

    # --- 控制台日志处理器 ---
    if console_handler and console_handler in root_logger.handlers:
        root_logger.removeHandler(console_handler)
        console_handler.close()
        console_handler = None

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(console_log_level)
    root_logger.addHandler(console_handler)

    # --- 文件日志处理器 ---
    if file_handler and file_handler in root_logger.handlers:
        root_logger.removeHandler(file_handler)
        file_handler.close()
        file_handler = None

    log_file_name = None
    if enable_file_logging:
        now = datetime.now()
        log_file_name = os.path.join(
            current_log_dir,
            f"cognilab_{now.strftime('%Y%m%d_%H%M%S')}_{now.microsecond // 1000:03d}_P{os.getpid()}.log"
        )
        try:
            os.makedirs(current_log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file_name, mode='a', encoding='utf-8')
            file_handler.setLevel(file_log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            sys.stderr.write(f"严重错误(setup_logging): 配置日志文件到 '{log_file_name}' 失败。错误信息: {e}\nTraceback: {traceback.format_exc()}\n")
            sys.stderr.write("服务将仅使用控制台日志继续运行。\n")
            file_handler = None

    # 根日志级别取所有处理器中最低的级别
    effective_root_level = console_log_level if file_handler is None else min(console_log_level, file_log_level)
    root_logger.setLevel(effective_root_level)

    app_logger = logging.getLogger("cognilab")

    # 抑制第三方库的冗余日志
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    if file_handler:
        app_logger.info(f"文件日志配置成功。级别: {logging.getLevelName(file_handler.level)}, 文件: {os.path.abspath(log_file_name)}")
    elif enable_file_logging:
        app_logger.warning("文件日志未配置成功。")
    app_logger.info(f"控制台日志配置成功。级别: {logging.getLevelName(console_handler.level)}")
    app_logger.info(f"Root logger 级别设置为: {logging.getLevelName(root_logger.level)}")

    return app_logger

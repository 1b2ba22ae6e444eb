"""
日志模块

控制台输出使用 loguru；指定 log_file 时额外写入按大小轮转的日志文件，
便于启动器出问题时回收日志。
"""

import os
import sys
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[module]: <12} | "
    "{name}:{function}:{line} - {message}"
)


def _resolve_level(level: Optional[str]) -> str:
    if level is not None:
        return level.upper()
    if os.environ.get("PACKSYNC_DEBUG", "0") == "1":
        return "DEBUG"
    return os.environ.get("PACKSYNC_LOG_LEVEL", "INFO").upper()


def setup_logger(
    level: Optional[str] = None,
    sink=sys.stdout,
    enqueue: bool = True,
    colorize: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    设置日志记录器

    Args:
        level: 日志级别；未指定时读取 PACKSYNC_DEBUG / PACKSYNC_LOG_LEVEL
        sink: 控制台输出目标
        enqueue: 是否启用队列（线程安全）
        colorize: 控制台是否启用颜色
        log_file: 日志文件路径，始终记录 DEBUG 级别
    """
    level = _resolve_level(level)
    debug = level == "DEBUG"

    logger.remove()
    logger.configure(extra={"module": "-"})

    logger.add(
        sink=sink,
        format=CONSOLE_FORMAT,
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=debug,
        diagnose=debug,
    )

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        logger.add(
            log_file,
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="5 MB",
            retention=5,
            encoding="utf-8",
            enqueue=enqueue,
        )

    if debug:
        logger.debug("DEBUG 模式已启用")


def get_logger(module_id: Optional[str] = None):
    """获取日志记录器；传入模块 ID 时绑定到文件日志的 module 字段"""
    if module_id is None:
        return logger
    return logger.bind(module=module_id)


__all__ = ["logger", "setup_logger", "get_logger"]

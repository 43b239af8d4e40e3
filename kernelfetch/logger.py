"""
日志模块

使用 loguru 记录同步过程。日志写到 stderr，stdout 只输出逐项结果，
便于脚本直接解析结果行。
"""

import os
import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"


def resolve_level(debug: bool = False, quiet: bool = False) -> str:
    """
    由命令行开关与 KERNELFETCH_DEBUG 环境变量决定日志级别

    调试优先于安静模式；安静模式只保留警告（例如未校验的下载）与错误。
    """
    if debug or os.environ.get("KERNELFETCH_DEBUG", "0") == "1":
        return "DEBUG"
    if quiet:
        return "WARNING"
    return "INFO"


def setup_logger(
    level: Optional[str] = None,
    sink=None,
    enqueue: bool = True,
    colorize: Optional[bool] = None,
) -> int:
    """
    设置日志记录器

    Args:
        level: 日志级别，None 时由 resolve_level() 决定
        sink: 输出目标（默认 stderr）
        enqueue: 是否启用队列（线程安全）
        colorize: 是否启用颜色，None 时由 loguru 按终端自动判断

    Returns:
        新处理器的 id
    """
    if level is None:
        level = resolve_level()

    if sink is None:
        sink = sys.stderr

    # 移除默认处理器
    logger.remove()

    handler_id = logger.add(
        sink=sink,
        format=LOG_FORMAT,
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if level == "DEBUG":
        logger.debug("DEBUG 模式已启用")
    return handler_id


__all__ = ["logger", "resolve_level", "setup_logger"]

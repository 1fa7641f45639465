# -*- coding: utf-8 -*-

"""
日志配置
"""

import logging
import sys

LOGGER_NAME = "cert-manage"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(LOGGER_NAME)


def setup_logging(debug: bool = False) -> logging.Logger:
    """配置日志输出到标准输出

    Args:
        debug: 是否显示调试信息

    Returns:
        cert-manage 的日志记录器
    """
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    set_debug(debug)
    return logger


def set_debug(debug: bool) -> None:
    """根据调试开关调整日志级别"""
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

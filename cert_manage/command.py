# -*- coding: utf-8 -*-

"""
外部命令执行 (security、keytool、sudo 等)
"""

import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional

from .errors import InvocationFailure
from .log import logger


def run_command(command: List[str], cwd: Optional[Path] = None, verbose: bool = False,
                timeout: Optional[float] = None) -> str:
    """执行shell命令并返回输出

    Args:
        command: 要执行的命令列表
        cwd: 执行命令的工作目录
        verbose: 是否逐行记录命令输出
        timeout: 超时时间（秒），None 表示一直等待

    Returns:
        命令的标准输出

    Raises:
        InvocationFailure: 命令无法启动、超时或以非零状态退出
    """
    cmd_str = ' '.join(command)
    logger.debug(f"执行命令: {cmd_str}")

    if timeout is not None and timeout <= 0:
        logger.error(f"操作已超时，不再执行: {cmd_str}")
        raise InvocationFailure(command, None, "操作已超时")

    try:
        result = subprocess.run(
            command,
            cwd=cwd.as_posix() if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"命令执行超时: {cmd_str}")
        raise InvocationFailure(command, None, f"超过 {timeout} 秒未完成") from e
    except OSError as e:
        logger.error(f"命令无法启动: {cmd_str}")
        raise InvocationFailure(command, None, str(e)) from e

    if verbose:
        for line in result.stdout.splitlines():
            logger.debug(f"  {line.rstrip()}")

    if result.returncode != 0:
        logger.error(f"命令执行失败: {cmd_str}")
        output = result.stderr.strip() or result.stdout.strip()
        raise InvocationFailure(command, result.returncode, output)

    return result.stdout


class Deadline:
    """一次操作的截止时间，操作中的每个命令共享剩余的时间"""

    def __init__(self, timeout: Optional[float] = None,
                 clock: Optional[Callable[[], float]] = None) -> None:
        self.clock = clock or time.monotonic
        self.expires = None if timeout is None else self.clock() + timeout

    def remaining(self) -> Optional[float]:
        """剩余秒数，没有截止时间时返回 None"""
        if self.expires is None:
            return None
        return max(self.expires - self.clock(), 0.0)

# -*- coding: utf-8 -*-

"""
信任存储操作的错误类型
"""

from typing import Optional, Sequence


class TrustStoreError(Exception):
    """所有信任存储错误的基类"""


class InvocationFailure(TrustStoreError):
    """外部工具执行失败 (非零退出、无法启动或超时)"""

    def __init__(self, command: Sequence[str], returncode: Optional[int], output: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        cmd_str = " ".join(self.command)
        if returncode is None:
            message = f"命令无法完成: {cmd_str}"
        else:
            message = f"命令执行失败 (退出码 {returncode}): {cmd_str}"
        if output:
            message = f"{message}\n{output}"
        super().__init__(message)


class MalformedSnapshot(TrustStoreError):
    """信任设置导出文件的结构无效"""


class DuplicateTrustRecord(TrustStoreError):
    """同一个快照中出现了重复的指纹"""

    def __init__(self, fingerprint: str) -> None:
        self.fingerprint = fingerprint
        super().__init__(f"快照中已存在该指纹: {fingerprint}")


class NoBackupFound(TrustStoreError):
    """没有找到备份文件，并且没有指定恢复文件"""

    def __init__(self, directory=None) -> None:
        self.directory = directory
        super().__init__("没有找到备份文件，并且没有指定恢复文件")


class RestoreFileMissing(TrustStoreError):
    """恢复文件不存在"""

    def __init__(self, path) -> None:
        self.path = path
        super().__init__(f"恢复文件不存在: {path}")


class WhitelistError(TrustStoreError):
    """白名单文件无法读取或格式无效"""


class UnsupportedStore(TrustStoreError):
    """未知或无法使用的存储后端"""

# -*- coding: utf-8 -*-

"""
备份目录、互斥锁与临时文件管理
"""

import fcntl
import os
import re
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from .config import BACKUP_DIR_PERMS, BACKUP_PREFIX, LOCK_FILENAME
from .errors import NoBackupFound, RestoreFileMissing
from .log import logger


@contextmanager
def scoped_temp_file(prefix: str, suffix: str = "") -> Iterator[Path]:
    """创建临时文件，退出时无论成功与否都删除

    临时文件可能包含信任策略内容，权限为 0600。
    """
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug(f"删除临时文件: {path}")


class BackupDirectory:
    """某个平台或应用的备份目录

    备份文件名为 trust-backup-<unix时间戳><suffix>，创建后不再修改。
    """

    def __init__(self, path: Union[str, Path], suffix: str,
                 clock: Callable[[], float] = time.time) -> None:
        self.path = Path(path)
        self.suffix = suffix
        self.clock = clock
        self._pattern = re.compile(rf'^{re.escape(BACKUP_PREFIX)}(\d+){re.escape(suffix)}$')

    def ensure(self) -> None:
        """创建备份目录（已存在时不做任何事）"""
        self.path.mkdir(parents=True, exist_ok=True, mode=BACKUP_DIR_PERMS)

    @contextmanager
    def lock(self) -> Iterator[None]:
        """在修改信任策略期间持有的互斥锁"""
        self.ensure()
        lock_path = self.path / LOCK_FILENAME
        with open(lock_path, "a") as fh:
            logger.debug(f"等待锁: {lock_path}")
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    def new_path(self) -> Path:
        return self.path / f"{BACKUP_PREFIX}{int(self.clock())}{self.suffix}"

    def save(self, source: Path) -> Path:
        """把文件复制为新的备份，已存在同名备份时报错而不是覆盖"""
        self.ensure()
        target = self.new_path()
        with open(source, "rb") as src, open(target, "xb") as dst:
            shutil.copyfileobj(src, dst)
        logger.info(f"已创建备份: {target}")
        return target

    def backups(self) -> List[Path]:
        """按时间戳从旧到新排列的备份文件"""
        if not self.path.is_dir():
            return []
        found = []
        for entry in self.path.iterdir():
            match = self._pattern.match(entry.name)
            if match and entry.is_file():
                found.append((int(match.group(1)), entry.name, entry))
        found.sort()
        return [entry for _, _, entry in found]

    def latest(self) -> Optional[Path]:
        backups = self.backups()
        return backups[-1] if backups else None

    def resolve(self, path: Optional[Union[str, Path]] = None) -> Path:
        """确定要恢复的文件

        Args:
            path: 指定的恢复文件；为空时使用最新的备份

        Raises:
            NoBackupFound: 没有指定文件并且没有任何备份
            RestoreFileMissing: 文件不存在或不是普通文件
        """
        if path is not None and str(path) not in ("", "."):
            where = Path(path)
        else:
            where = self.latest()
            if where is None:
                raise NoBackupFound(self.path)
        if not where.is_file():
            raise RestoreFileMissing(where)
        return where

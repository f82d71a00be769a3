"""
Filesystem bridge: the read/write primitives the fs tools are built on,
scoped to a workspace root.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional, Protocol, Union

from pydantic import BaseModel


class FsStat(BaseModel):
    type: Literal["file", "directory", "other"]
    size: int
    mtime: float


class FsBridge(Protocol):
    async def stat(self, file_path: str, cwd: Optional[str] = None) -> Optional[FsStat]: ...

    async def read_file(self, file_path: str, cwd: Optional[str] = None) -> bytes: ...

    async def mkdirp(self, file_path: str, cwd: Optional[str] = None) -> None: ...

    async def write_file(
        self, file_path: str, data: Union[str, bytes], cwd: Optional[str] = None
    ) -> None: ...

    async def list_dir(self, file_path: str, cwd: Optional[str] = None) -> list[tuple[str, FsStat]]: ...


def _is_under(child: Path, parent: Path) -> bool:
    """Check if child is under parent, case-insensitively (Windows-safe)."""
    child_str = os.path.normcase(str(child)).rstrip(os.sep + "/") + os.sep
    parent_str = os.path.normcase(str(parent)).rstrip(os.sep + "/") + os.sep
    return child_str.startswith(parent_str)


def _stat(path: Path) -> FsStat:
    st = path.stat()
    kind = "file" if path.is_file() else "directory" if path.is_dir() else "other"
    return FsStat(type=kind, size=st.st_size, mtime=st.st_mtime)


class LocalFsBridge:
    """FsBridge backed by the local disk. Paths outside `root` are refused."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser().resolve()

    def resolve(self, file_path: str, cwd: Optional[str] = None) -> Path:
        base = Path(cwd).expanduser() if cwd else self.root
        if not base.is_absolute():
            base = self.root / base
        resolved = (base / Path(file_path).expanduser()).resolve()
        if not _is_under(resolved, self.root):
            raise PermissionError(f"Access denied: '{resolved}' is outside {self.root}")
        return resolved

    async def stat(self, file_path: str, cwd: Optional[str] = None) -> Optional[FsStat]:
        path = self.resolve(file_path, cwd)
        if not path.exists():
            return None
        return _stat(path)

    async def read_file(self, file_path: str, cwd: Optional[str] = None) -> bytes:
        return self.resolve(file_path, cwd).read_bytes()

    async def mkdirp(self, file_path: str, cwd: Optional[str] = None) -> None:
        self.resolve(file_path, cwd).mkdir(parents=True, exist_ok=True)

    async def write_file(
        self, file_path: str, data: Union[str, bytes], cwd: Optional[str] = None
    ) -> None:
        target = self.resolve(file_path, cwd)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data.encode("utf-8") if isinstance(data, str) else data)

    async def list_dir(self, file_path: str, cwd: Optional[str] = None) -> list[tuple[str, FsStat]]:
        path = self.resolve(file_path, cwd)
        return [(entry.name, _stat(entry)) for entry in sorted(path.iterdir())]

"""Build tree scanning and per-file cache classification."""

from __future__ import annotations

import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from ..errors import ConfigurationError

SHORT_CACHE = "public, max-age=300"        # 5 分钟：HTML 需要尽快更新
LONG_CACHE = "public, max-age=31536000"    # 1 年：构建产物文件名带版本
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class FileDescriptor:
    """One regular file of the build tree and how it is stored."""

    local_path: Path
    remote_key: str
    content_type: str
    cache_control: str


def cache_control_for(key: str) -> str:
    """HTML is short-lived, everything else is cached for a year."""
    if key == "index.html" or key.endswith(".html"):
        return SHORT_CACHE
    return LONG_CACHE


def content_type_for(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or DEFAULT_CONTENT_TYPE


def to_remote_key(path: Path, root: Path) -> str:
    """Relative path of ``path`` under ``root`` with forward slashes."""
    return path.relative_to(root).as_posix()


def describe(path: Path, root: Path) -> FileDescriptor:
    key = to_remote_key(path, root)
    return FileDescriptor(
        local_path=path,
        remote_key=key,
        content_type=content_type_for(path),
        cache_control=cache_control_for(key),
    )


def scan(build_dir: Path) -> List[FileDescriptor]:
    """
    Walk ``build_dir`` and describe every regular file, sorted by key.

    Directories are not represented. Two files mapping to the same key are a
    configuration error rather than one silently replacing the other.
    """
    root = Path(build_dir)
    if not root.is_dir():
        raise ConfigurationError(f"Build directory not found: {root}")

    by_key: Dict[str, FileDescriptor] = {}
    for current, _dirs, files in os.walk(root):
        for filename in files:
            path = Path(current) / filename
            if not path.is_file():
                continue
            descriptor = describe(path, root)
            if descriptor.remote_key in by_key:
                raise ConfigurationError(
                    f"Duplicate remote key {descriptor.remote_key!r} for "
                    f"{by_key[descriptor.remote_key].local_path} and {path}"
                )
            by_key[descriptor.remote_key] = descriptor

    return [by_key[key] for key in sorted(by_key)]

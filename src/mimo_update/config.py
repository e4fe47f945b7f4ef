"""
Bundle configuration files.

The resource bundle carries a ``config.json`` describing which files to copy
(``file_mappings``), which versions are being swapped (``version``) and,
optionally, init files whose contents are embedded directly (``files``).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from mimo_common.exceptions import InvalidConfigError, MissingConfigError

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "v0.0.0"


@dataclass(frozen=True)
class FileMapping:
    """One source → destination copy."""
    src: str
    dst: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileMapping":
        try:
            src, dst = data["src"], data["dst"]
        except (KeyError, TypeError):
            raise InvalidConfigError("file_mappings", data, "entries need 'src' and 'dst'")
        if not src or not dst:
            raise InvalidConfigError("file_mappings", data, "'src' and 'dst' must be non-empty")
        return cls(src=os.path.normpath(src), dst=os.path.normpath(dst))

    def to_dict(self) -> Dict[str, str]:
        return {"src": self.src, "dst": self.dst}


@dataclass
class FileOpsConfig:
    """Copy plan for a system update."""
    file_mappings: List[FileMapping] = field(default_factory=list)
    services: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileOpsConfig":
        mappings = data.get("file_mappings")
        if mappings is None:
            raise MissingConfigError("file_mappings")
        if not isinstance(mappings, list):
            raise InvalidConfigError("file_mappings", mappings, "must be a list")
        services = data.get("services") or []
        return cls(
            file_mappings=[FileMapping.from_dict(m) for m in mappings],
            services=[str(s) for s in services],
        )


@dataclass
class VersionConfig:
    """
    Version files for a target update.

    ``version[0].src`` is the new version file inside the bundle,
    ``version[1].dst`` the installed one.
    """
    version: List[FileMapping] = field(default_factory=list)

    @property
    def new_version_file(self) -> Path:
        return Path(self.version[0].src)

    @property
    def installed_version_file(self) -> Path:
        return Path(self.version[1].dst)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionConfig":
        entries = data.get("version")
        if entries is None:
            raise MissingConfigError("version")
        if not isinstance(entries, list) or len(entries) < 2:
            raise InvalidConfigError("version", entries, "need src and dst entries")
        return cls(version=[FileMapping.from_dict(e) for e in entries])


@dataclass
class InitFileConfig:
    """A file whose content is embedded in the configuration."""
    path: str
    content: str = ""
    mode: str = "0644"
    type: str = "text"
    is_dir: bool = False

    @property
    def file_mode(self) -> int:
        """Parsed octal mode, 0o644 when unparseable."""
        try:
            return int(self.mode, 8) if self.mode else 0o644
        except ValueError:
            logger.warning(f"Invalid mode {self.mode!r} for {self.path}, using 0644")
            return 0o644

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InitFileConfig":
        if not data.get("path"):
            raise InvalidConfigError("files", data, "entries need 'path'")
        return cls(
            path=os.path.normpath(data["path"]),
            content=data.get("content", ""),
            mode=data.get("mode", "0644"),
            type=data.get("type", "text"),
            is_dir=bool(data.get("is_dir", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"path": self.path, "content": self.content, "mode": self.mode}
        if self.type:
            data["type"] = self.type
        if self.is_dir:
            data["is_dir"] = True
        return data


@dataclass
class InitConfig:
    """Init files, services to enable, and the config version."""
    files: List[InitFileConfig] = field(default_factory=list)
    services: List[str] = field(default_factory=list)
    version: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InitConfig":
        files = data.get("files") or []
        if not isinstance(files, list):
            raise InvalidConfigError("files", files, "must be a list")
        return cls(
            files=[InitFileConfig.from_dict(f) for f in files],
            services=[str(s) for s in data.get("services") or []],
            version=str(data.get("version", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"files": [f.to_dict() for f in self.files]}
        if self.services:
            data["services"] = list(self.services)
        if self.version:
            data["version"] = self.version
        return data


def _read_json(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise MissingConfigError(str(path))
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidConfigError(str(path), "<json>", f"parse error: {e}")
    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), type(data).__name__, "top level must be an object")
    return data


def load_file_ops_config(path: Union[str, Path]) -> FileOpsConfig:
    """Load the copy plan from config.json."""
    return FileOpsConfig.from_dict(_read_json(path))


def load_version_config(path: Union[str, Path]) -> VersionConfig:
    """Load the version mapping from config.json."""
    return VersionConfig.from_dict(_read_json(path))


def load_init_config(path: Union[str, Path]) -> InitConfig:
    """Load an init-file configuration."""
    return InitConfig.from_dict(_read_json(path))


def load_optional_init_config(path: Union[str, Path]) -> InitConfig:
    """Load init files from config.json; an absent ``files`` key is an empty config."""
    data = _read_json(path)
    if "files" not in data:
        return InitConfig()
    return InitConfig.from_dict(data)


def read_mimo_version(path: Union[str, Path]) -> str:
    """
    Read the ``MIMO`` field of a version file.

    Returns:
        The version string, or ``v0.0.0`` if the file is missing,
        unparseable, or has no usable ``MIMO`` field.
    """
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return DEFAULT_VERSION
    if not isinstance(data, dict):
        return DEFAULT_VERSION
    version = data.get("MIMO")
    if isinstance(version, str) and version:
        return version
    return DEFAULT_VERSION


def _major_minor(version: str):
    parts = version.strip().lstrip("vV").split(".")
    numbers = []
    for part in parts[:2]:
        try:
            numbers.append(int(part))
        except ValueError:
            numbers.append(0)
    while len(numbers) < 2:
        numbers.append(0)
    return tuple(numbers)


def version_less(v1: str, v2: str) -> bool:
    """True if ``v1`` is older than ``v2`` comparing major.minor."""
    return _major_minor(v1) < _major_minor(v2)


def generate_init_config(mappings: List[FileMapping]) -> InitConfig:
    """
    Build an InitConfig from files that currently exist on disk.

    Directory sources are skipped. The type is derived from the destination
    extension and ``.service`` files are also listed as services.

    Raises:
        MissingConfigError: a mapped source file does not exist.
    """
    cfg = InitConfig()
    for mapping in mappings:
        src = Path(mapping.src)
        if src.is_dir():
            continue
        if not src.exists():
            raise MissingConfigError(str(src))

        mode = f"{src.stat().st_mode & 0o7777:04o}"
        dst_name = Path(mapping.dst).name
        suffix = Path(dst_name).suffix
        file_type = {".sh": "script", ".service": "service", ".conf": "config"}.get(suffix, "text")
        if file_type == "service":
            cfg.services.append(dst_name)

        cfg.files.append(InitFileConfig(
            path=mapping.dst,
            content=src.read_text(),
            mode=mode,
            type=file_type,
        ))
    return cfg

"""Data models for appvm."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, NamedTuple, Optional

from appvm.constants import (
    DEFAULT_BRANCH,
    DEFAULT_CPUS,
    DEFAULT_MEMORY_MB,
    DEFAULT_OWNER,
    DEFAULT_REPO,
    DISK_IMAGE_NAME,
    LIBVIRT_SOCKET,
    LIBVIRT_URI,
    LOCKS_DIR_NAME,
    MEMORY_USED_FILE,
)
from appvm.utils import short_name


@dataclass
class AppConfig:
    """Resolved configuration, built once and passed to every component."""

    base_dir: Path
    config_dir: Path
    search_paths: List[Path]
    libvirt_socket: Path = LIBVIRT_SOCKET
    libvirt_uri: str = LIBVIRT_URI
    default_owner: str = DEFAULT_OWNER
    default_repo: str = DEFAULT_REPO
    default_branch: str = DEFAULT_BRANCH
    memory_mb: int = DEFAULT_MEMORY_MB
    cpus: int = DEFAULT_CPUS

    @property
    def disk_image_path(self) -> Path:
        return self.base_dir / DISK_IMAGE_NAME

    @property
    def locks_dir(self) -> Path:
        return self.base_dir / LOCKS_DIR_NAME

    @property
    def nix_dir(self) -> Path:
        return self.config_dir / "nix"

    def app_dir(self, name: str) -> Path:
        return self.base_dir / short_name(name)

    def memory_used_path(self, name: str) -> Path:
        return self.app_dir(name) / MEMORY_USED_FILE


@dataclass(frozen=True)
class SpecLocation:
    kind: str  # "local" or "remote"
    name: str
    path: Optional[Path] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    expression: Optional[str] = None

    @property
    def is_remote(self) -> bool:
        return self.kind == "remote"

    def __str__(self) -> str:
        if self.is_remote:
            return f"{self.owner}/{self.repo}/{self.name} (remote)"
        return str(self.path)


@dataclass(frozen=True)
class BuildArtifact:
    system_path: Path
    reginfo_path: Path
    disk_image_path: Path


@dataclass
class DomainDescriptor:
    name: str
    system_path: Path
    reginfo_path: Path
    disk_image_path: Path
    shared_dir: Path
    memory_mb: int = DEFAULT_MEMORY_MB
    cpus: int = DEFAULT_CPUS


class MemorySample(NamedTuple):
    name: str
    used_bytes: int
    current_bytes: int
    max_bytes: int
    new_bytes: int

"""Configuration loading and environment variable parsing for appvm."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from appvm.constants import (
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_CPUS,
    DEFAULT_MEMORY_MB,
    LIBVIRT_SOCKET,
    LIBVIRT_URI,
    STATE_DIR_MODE,
    STATE_DIR_NAME,
)
from appvm.exceptions import ManagerError
from appvm.models import AppConfig
from appvm.templates import BASE_NIX, LOCAL_NIX
from appvm.utils import ensure_directory, get_env, log, parse_int

_KNOWN_KEYS = {
    "search_paths",
    "libvirt_socket",
    "libvirt_uri",
    "default_owner",
    "default_repo",
    "default_branch",
    "memory",
    "cpus",
}


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read the optional YAML settings file; a missing file means no overrides."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ManagerError(f"Invalid YAML in {path}: {exc}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManagerError(f"{path} must contain a YAML mapping, got {type(data).__name__}")
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        log("WARN", f"Ignoring unknown keys in {path}: {', '.join(unknown)}")
    return data


def _split_search_paths(raw: str) -> List[Path]:
    return [Path(item).expanduser() for item in raw.split(":") if item.strip()]


def load_config(home: Optional[Path] = None) -> AppConfig:
    """Build the configuration from defaults, the YAML file, then the environment."""
    if home is None:
        home_env = get_env("HOME")
        if not home_env:
            raise ManagerError("HOME is not set; cannot locate appvm state")
        home = Path(home_env)

    config_dir = home / CONFIG_DIR_NAME
    settings = load_config_file(config_dir / CONFIG_FILE_NAME)

    search_raw = get_env("APPVM_CONFIGS")
    if search_raw:
        search_paths = _split_search_paths(search_raw)
    elif settings.get("search_paths"):
        configured = settings["search_paths"]
        if isinstance(configured, str):
            search_paths = _split_search_paths(configured)
        else:
            search_paths = [Path(str(item)).expanduser() for item in configured]
    else:
        search_paths = [config_dir]

    socket_raw = get_env("LIBVIRT_SOCKET") or settings.get("libvirt_socket")
    memory_raw = get_env("APPVM_MEMORY") or settings.get("memory", DEFAULT_MEMORY_MB)
    cpus_raw = get_env("APPVM_CPUS") or settings.get("cpus", DEFAULT_CPUS)

    cfg = AppConfig(
        base_dir=home / STATE_DIR_NAME,
        config_dir=config_dir,
        search_paths=search_paths,
        libvirt_socket=Path(socket_raw) if socket_raw else LIBVIRT_SOCKET,
        libvirt_uri=get_env("LIBVIRT_URI") or settings.get("libvirt_uri", LIBVIRT_URI),
        memory_mb=parse_int("APPVM_MEMORY", memory_raw, min_val=256),
        cpus=parse_int("APPVM_CPUS", cpus_raw, min_val=1, max_val=512),
    )
    for key in ("default_owner", "default_repo", "default_branch"):
        if settings.get(key):
            setattr(cfg, key, str(settings[key]))
    return cfg


def prepare_config_root(cfg: AppConfig) -> None:
    """Create the state/config directories and write the Nix templates."""
    ensure_directory(cfg.base_dir, STATE_DIR_MODE)
    ensure_directory(cfg.nix_dir, STATE_DIR_MODE)
    (cfg.nix_dir / "base.nix").write_text(BASE_NIX)
    local_nix = cfg.nix_dir / "local.nix"
    if not local_nix.exists():
        local_nix.write_text(LOCAL_NIX)
        log("INFO", f"Seeded {local_nix}")

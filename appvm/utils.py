"""Utility functions for appvm."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import List, Optional

from appvm.constants import _LOG_VERBOSE, DOMAIN_PREFIX
from appvm.exceptions import ManagerError


def log(level: str, message: str) -> None:
    """Lightweight structured logging compatible with existing colour expectation."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def parse_int(name: str, raw: object, min_val: int = 1, max_val: Optional[int] = None) -> int:
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ManagerError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ManagerError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ManagerError(f"{name} must be <= {max_val} (got {value})")
    return value


def ensure_directory(path: Path, mode: int = 0o777) -> None:
    path.mkdir(mode=mode, parents=True, exist_ok=True)


def short_name(name: str) -> str:
    """Return the application part of a plain or ``owner/repo/name`` identifier."""
    parts = name.split("/")
    if len(parts) == 3:
        return parts[2]
    return name


def domain_name(name: str) -> str:
    return DOMAIN_PREFIX + short_name(name)


def app_name_from_domain(domain: str) -> Optional[str]:
    """Strip the domain prefix, or return None for domains appvm does not own."""
    if not domain.startswith(DOMAIN_PREFIX):
        return None
    return domain[len(DOMAIN_PREFIX):]


def run(cmd: List[str], check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """Run command with logging."""
    log("DEBUG", f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result


def validate_app_name(name: str) -> str:
    """Reject names that would escape the per-application state directory."""
    app = short_name(name.strip()) if name else ""
    if not app or "/" in app or app.startswith("."):
        raise ManagerError(f"Invalid application name '{name}'")
    return name.strip()

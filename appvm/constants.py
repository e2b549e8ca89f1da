"""Global constants and path configuration for appvm."""

from __future__ import annotations

import os
import re
from pathlib import Path

DOMAIN_PREFIX = "appvm_"

LIBVIRT_SOCKET = Path("/var/run/libvirt/libvirt-sock")
LIBVIRT_URI = "qemu:///system"
DIAL_TIMEOUT = 1.0

STATE_DIR_NAME = "appvm"
CONFIG_DIR_NAME = Path(".config") / "appvm"
CONFIG_FILE_NAME = "config.yaml"
LOCKS_DIR_NAME = ".locks"

MEMORY_USED_FILE = ".memory_used"
DISK_IMAGE_NAME = ".fake.qcow2"
DISK_IMAGE_FORMAT = "qcow2"
DISK_IMAGE_SIZE = "512M"
DISK_IMAGE_MODE = 0o400
STATE_DIR_MODE = 0o700

# Default remote repository for application expressions
DEFAULT_OWNER = "jollheef"
DEFAULT_REPO = "appvm"
DEFAULT_BRANCH = "master"
REMOTE_FETCH_FORMAT = (
    '(builtins.fetchurl "https://raw.githubusercontent.com/{owner}/{repo}/{branch}/nix/{name}.nix")'
)

TEMPLATE_NAMES = {"base", "local"}

BUILDER = "nix-build"
NIX_EVAL = "nix"
DISK_TOOL = "qemu-img"
VIEWER = "virt-viewer"
BUILD_RESULT_SYSTEM = "system"
BUILD_RESULT_RUN_SCRIPT = Path("bin") / "run-nixos-vm"

REGINFO_RE = re.compile(r"regInfo=(\S*/registration)")

DEFAULT_MEMORY_MB = 4096
DEFAULT_CPUS = 2
DEFAULT_MIN_MEMORY_MB = 1024
DEFAULT_ADJUST_PERCENT = 20

MIB = 1024 * 1024
KIB = 1024

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

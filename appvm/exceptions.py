"""Custom exceptions for appvm."""

from __future__ import annotations

from typing import Optional


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ResolutionError(ManagerError):
    """No local or remote specification could be materialized."""


class BuildError(ManagerError):
    """The external builder failed to launch or exited non-zero."""

    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
    ) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        details = [message]
        if stdout:
            details.append(f"stdout:\n{stdout.rstrip()}")
        if stderr:
            details.append(f"stderr:\n{stderr.rstrip()}")
        super().__init__("\n".join(details))


class ParseError(ManagerError):
    """Builder output did not match the expected shape."""


class HypervisorError(ManagerError):
    """A libvirt call failed for a reason other than a missing domain."""

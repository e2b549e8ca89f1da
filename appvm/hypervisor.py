"""Libvirt session wrapper for appvm."""

from __future__ import annotations

import socket
from typing import List, Optional, Tuple

try:
    import libvirt  # type: ignore
except ImportError:  # pragma: no cover
    libvirt = None

from appvm.constants import DIAL_TIMEOUT, KIB
from appvm.domain import render_domain_xml
from appvm.exceptions import HypervisorError
from appvm.models import AppConfig, DomainDescriptor
from appvm.utils import log


def _message(exc: "libvirt.libvirtError") -> str:
    return exc.get_error_message() if hasattr(exc, "get_error_message") else str(exc)


def _is_not_found(exc: "libvirt.libvirtError") -> bool:
    return exc.get_error_code() == libvirt.VIR_ERR_NO_DOMAIN


class HypervisorClient:
    """One libvirt connection per process, opened over the local control socket."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg
        self.conn: Optional[libvirt.virConnect] = None

    @property
    def uri(self) -> str:
        return f"qemu+unix:///system?socket={self.cfg.libvirt_socket}"

    def connect(self) -> None:
        if libvirt is None:
            raise HypervisorError("libvirt python bindings not available (install libvirt-python)")
        self._dial()
        try:
            self.conn = libvirt.open(self.uri)
        except libvirt.libvirtError as exc:
            raise HypervisorError(f"Failed to open libvirt connection to {self.uri}: {_message(exc)}") from exc
        if self.conn is None:
            raise HypervisorError(f"Failed to open libvirt connection to {self.uri}")

    def _dial(self) -> None:
        """Fail fast when libvirtd is not listening instead of blocking inside libvirt."""
        path = self.cfg.libvirt_socket
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as client:
                client.settimeout(DIAL_TIMEOUT)
                client.connect(str(path))
        except OSError as exc:
            raise HypervisorError(f"Cannot reach libvirt socket {path}: {exc}") from exc

    def close(self) -> None:
        if self.conn is not None:
            try:
                self.conn.close()
            except libvirt.libvirtError as exc:
                log("DEBUG", f"Error while closing libvirt connection: {_message(exc)}")
            self.conn = None

    def __enter__(self) -> "HypervisorClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connection(self) -> "libvirt.virConnect":
        if self.conn is None:
            raise HypervisorError("libvirt connection not established")
        return self.conn

    def list_domains(self) -> List["libvirt.virDomain"]:
        try:
            return self._connection().listAllDomains(libvirt.VIR_CONNECT_LIST_DOMAINS_ACTIVE)
        except libvirt.libvirtError as exc:
            raise HypervisorError(f"Failed to list domains: {_message(exc)}") from exc

    def lookup(self, name: str) -> Optional["libvirt.virDomain"]:
        """Return the running domain, or None when it does not exist (stopped)."""
        try:
            return self._connection().lookupByName(name)
        except libvirt.libvirtError as exc:
            if _is_not_found(exc):
                return None
            raise HypervisorError(f"Failed to look up domain {name}: {_message(exc)}") from exc

    def create(self, desc: DomainDescriptor) -> "libvirt.virDomain":
        xml = render_domain_xml(desc)
        try:
            domain = self._connection().createXML(xml, libvirt.VIR_DOMAIN_START_VALIDATE)
        except libvirt.libvirtError as exc:
            raise HypervisorError(f"Failed to create domain {desc.name}: {_message(exc)}") from exc
        if domain is None:
            raise HypervisorError(f"Failed to create domain {desc.name}")
        log("SUCCESS", f"Domain {desc.name} started")
        return domain

    def shutdown(self, domain: "libvirt.virDomain") -> None:
        """Request a graceful guest shutdown without waiting for it to finish."""
        try:
            domain.shutdown()
        except libvirt.libvirtError as exc:
            if _is_not_found(exc):
                log("INFO", f"Domain {domain.name()} already gone")
                return
            raise HypervisorError(f"Failed to shut down domain {domain.name()}: {_message(exc)}") from exc

    def memory_info(self, domain: "libvirt.virDomain") -> Tuple[int, int]:
        """Return ``(max_bytes, current_bytes)``."""
        try:
            _state, max_kib, current_kib, _vcpus, _cpu_time = domain.info()
        except libvirt.libvirtError as exc:
            raise HypervisorError(f"Failed to read memory of {domain.name()}: {_message(exc)}") from exc
        return max_kib * KIB, current_kib * KIB

    def set_memory(self, domain: "libvirt.virDomain", size_bytes: int) -> None:
        try:
            domain.setMemory(size_bytes // KIB)
        except libvirt.libvirtError as exc:
            raise HypervisorError(f"Failed to set memory of {domain.name()}: {_message(exc)}") from exc

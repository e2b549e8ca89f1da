"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from appvm.models import AppConfig, BuildArtifact


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """Return an AppConfig rooted in a temporary home directory."""
    home = tmp_path / "home"
    cfg = AppConfig(
        base_dir=home / "appvm",
        config_dir=home / ".config" / "appvm",
        search_paths=[tmp_path / "repo-a", tmp_path / "repo-b"],
        libvirt_socket=tmp_path / "libvirt-sock",
    )
    cfg.base_dir.mkdir(parents=True)
    cfg.nix_dir.mkdir(parents=True)
    return cfg


def make_domain(name: str) -> MagicMock:
    domain = MagicMock()
    domain.name.return_value = name
    return domain


class FakeHypervisor:
    """In-memory stand-in for HypervisorClient: created domains run until shut down."""

    def __init__(self) -> None:
        self.domains = {}
        self.created = []
        self.memory = {}
        self.set_calls = []

    def list_domains(self):
        return list(self.domains.values())

    def lookup(self, name):
        return self.domains.get(name)

    def create(self, desc):
        domain = make_domain(desc.name)
        self.domains[desc.name] = domain
        self.created.append(desc)
        return domain

    def shutdown(self, domain):
        self.domains.pop(domain.name(), None)

    def memory_info(self, domain):
        return self.memory[domain.name()]

    def set_memory(self, domain, size_bytes):
        self.set_calls.append((domain.name(), size_bytes))

    def add(self, name):
        domain = make_domain(name)
        self.domains[name] = domain
        return domain

    def close(self):
        pass


@pytest.fixture
def fake_hypervisor() -> FakeHypervisor:
    return FakeHypervisor()


@pytest.fixture
def artifact(tmp_path) -> BuildArtifact:
    return BuildArtifact(
        system_path=Path("/nix/store/abc-nixos-system"),
        reginfo_path=Path("/nix/store/def-closure-info/registration"),
        disk_image_path=tmp_path / "home" / "appvm" / ".fake.qcow2",
    )


class FakeLibvirtError(Exception):
    """Carries an error code the way libvirt.libvirtError reports it."""

    def __init__(self, message: str, code: int = 1) -> None:
        super().__init__(message)
        self.code = code

    def get_error_code(self) -> int:
        return self.code

    def get_error_message(self) -> str:
        return str(self)


def _refuse_open(uri):
    raise FakeLibvirtError(f"no hypervisor behind {uri}", 38)


@pytest.fixture
def fake_libvirt(monkeypatch) -> SimpleNamespace:
    """Replace the bindings seen by appvm.hypervisor, installed or not."""
    module = SimpleNamespace(
        libvirtError=FakeLibvirtError,
        open=_refuse_open,
        VIR_ERR_OPERATION_FAILED=9,
        VIR_ERR_XML_ERROR=27,
        VIR_ERR_SYSTEM_ERROR=38,
        VIR_ERR_NO_DOMAIN=42,
        VIR_ERR_OPERATION_INVALID=55,
        VIR_CONNECT_LIST_DOMAINS_ACTIVE=1,
        VIR_DOMAIN_START_VALIDATE=16,
    )
    monkeypatch.setattr("appvm.hypervisor.libvirt", module)
    return module

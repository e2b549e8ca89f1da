"""Start/stop/drop orchestration for application VMs."""

from __future__ import annotations

import shutil
import subprocess
from typing import List, Optional, Tuple

from appvm.builder import BuildPipeline
from appvm.constants import STATE_DIR_MODE, VIEWER
from appvm.exceptions import ManagerError
from appvm.locks import file_lock
from appvm.models import AppConfig, BuildArtifact, DomainDescriptor
from appvm.progress import ProgressBar
from appvm.resolver import SpecResolver
from appvm.utils import (
    app_name_from_domain,
    domain_name,
    ensure_directory,
    log,
    short_name,
    validate_app_name,
)


class LifecycleManager:
    """Drive one application VM between STOPPED and RUNNING.

    Run state is never stored: a domain that libvirt can find is running,
    one it cannot is stopped.
    """

    def __init__(
        self,
        cfg: AppConfig,
        client,
        resolver: Optional[SpecResolver] = None,
        pipeline: Optional[BuildPipeline] = None,
    ) -> None:
        self.cfg = cfg
        self.client = client
        self.resolver = resolver or SpecResolver(cfg)
        self.pipeline = pipeline or BuildPipeline(cfg)

    def is_running(self, name: str) -> bool:
        return self.client.lookup(domain_name(name)) is not None

    def start(self, name: str, verbose: bool = False) -> None:
        name = validate_app_name(name)
        with file_lock(self.cfg.locks_dir, short_name(name)):
            if self.is_running(name):
                log("INFO", f"{domain_name(name)} is already running")
            else:
                location = self.resolver.resolve(name)
                if verbose:
                    artifact = self.pipeline.build(location, verbose=True)
                else:
                    with ProgressBar():
                        artifact = self.pipeline.build(location)
                self.client.create(self.descriptor(name, artifact))
        self.launch_viewer(name)

    def descriptor(self, name: str, artifact: BuildArtifact) -> DomainDescriptor:
        shared_dir = self.cfg.app_dir(name)
        ensure_directory(shared_dir, STATE_DIR_MODE)
        return DomainDescriptor(
            name=domain_name(name),
            system_path=artifact.system_path,
            reginfo_path=artifact.reginfo_path,
            disk_image_path=artifact.disk_image_path,
            shared_dir=shared_dir,
            memory_mb=self.cfg.memory_mb,
            cpus=self.cfg.cpus,
        )

    def launch_viewer(self, name: str) -> subprocess.Popen:
        """Attach a display client in the background; its exit status is never collected."""
        cmd = [VIEWER, "-c", self.cfg.libvirt_uri, domain_name(name)]
        log("DEBUG", f"Running: {' '.join(cmd)}")
        try:
            return subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise ManagerError(f"Failed to launch {VIEWER}: {exc}") from exc

    def stop(self, name: str) -> None:
        name = validate_app_name(name)
        domain = self.client.lookup(domain_name(name))
        if domain is None:
            log("INFO", "Appvm not found or already stopped")
            return
        self.client.shutdown(domain)
        log("SUCCESS", f"Shutdown requested for {domain_name(name)}")

    def drop(self, name: str, force: bool = False) -> None:
        """Delete the application's state directory.

        A running VM still has the directory mounted, so that case needs ``force``.
        """
        name = validate_app_name(name)
        if self.is_running(name) and not force:
            raise ManagerError(
                f"{domain_name(name)} is running; stop it first or pass --force to drop its data anyway"
            )
        path = self.cfg.app_dir(name)
        if not path.exists():
            log("INFO", f"No data for {short_name(name)} at {path}")
            return
        shutil.rmtree(path)
        log("SUCCESS", f"Removed {path}")

    def list_applications(self) -> Tuple[List[str], List[str]]:
        started = []
        for domain in self.client.list_domains():
            app = app_name_from_domain(domain.name())
            if app is not None:
                started.append(app)
        return sorted(started), self.resolver.available()

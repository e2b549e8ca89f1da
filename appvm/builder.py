"""Build pipeline: turn an application expression into a bootable NixOS VM closure."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Tuple

from appvm.constants import (
    BUILD_RESULT_RUN_SCRIPT,
    BUILD_RESULT_SYSTEM,
    BUILDER,
    DISK_IMAGE_FORMAT,
    DISK_IMAGE_MODE,
    DISK_IMAGE_SIZE,
    DISK_TOOL,
    NIX_EVAL,
    REGINFO_RE,
)
from appvm.exceptions import BuildError, ParseError, ResolutionError
from appvm.locks import DISK_IMAGE_LOCK, file_lock
from appvm.models import AppConfig, BuildArtifact, SpecLocation
from appvm.utils import log, run, short_name


def parse_registration_info(script: str) -> Path:
    """Extract the closure registration path embedded in the generated run script.

    The builder exposes this only as ``regInfo=<path>/registration`` inside
    ``bin/run-nixos-vm``; exactly one occurrence is accepted.
    """
    matches = REGINFO_RE.findall(script)
    if len(matches) != 1:
        raise ParseError(f"should be one reginfo (found {len(matches)})")
    return Path(matches[0])


class BuildPipeline:
    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def build(self, location: SpecLocation, verbose: bool = False) -> BuildArtifact:
        spec_path = self.materialize(location)
        log("INFO", f"Building {location.name} from {spec_path}")
        out_link = self.cfg.config_dir / f"result-{short_name(location.name)}"
        self._invoke_builder(spec_path, out_link, verbose)

        try:
            result = out_link.resolve(strict=True)
        finally:
            # Only the gc-root symlink is transient; the store path stays valid.
            out_link.unlink(missing_ok=True)

        system_path = (result / BUILD_RESULT_SYSTEM).resolve(strict=True)
        reginfo_path = parse_registration_info((result / BUILD_RESULT_RUN_SCRIPT).read_text())
        disk_image = self.ensure_disk_image()
        log("SUCCESS", f"Built {location.name}: {system_path}")
        return BuildArtifact(system_path=system_path, reginfo_path=reginfo_path, disk_image_path=disk_image)

    def materialize(self, location: SpecLocation) -> Path:
        """Return a local path for the expression, fetching remote ones through nix."""
        if not location.is_remote:
            assert location.path is not None
            return location.path
        cmd = [NIX_EVAL, "eval", "--impure", "--raw", "--expr", location.expression or ""]
        try:
            result = run(cmd, check=False, capture_output=True)
        except OSError as exc:
            raise ResolutionError(f"Failed to run {NIX_EVAL}: {exc}") from exc
        fetched = result.stdout.strip()
        if result.returncode != 0 or not fetched:
            raise ResolutionError(
                f"No local or remote expression found for {location}: {result.stderr.strip() or 'empty result'}"
            )
        return Path(fetched)

    def builder_command(self, spec_path: Path, out_link: Path) -> List[str]:
        return [
            BUILDER,
            "<nixpkgs/nixos>",
            "-A",
            "config.system.build.vm",
            "-I",
            f"nixos-config={spec_path}",
            "-I",
            str(self.cfg.config_dir),
            "--out-link",
            str(out_link),
        ]

    def _invoke_builder(self, spec_path: Path, out_link: Path, verbose: bool) -> None:
        cmd = self.builder_command(spec_path, out_link)
        log("DEBUG", f"Running: {' '.join(cmd)}")
        try:
            if verbose:
                returncode, stdout, stderr = self._stream(cmd)
            else:
                proc = subprocess.run(cmd, cwd=self.cfg.config_dir, capture_output=True, text=True)
                returncode, stdout, stderr = proc.returncode, proc.stdout, proc.stderr
        except OSError as exc:
            raise BuildError(f"Failed to launch {BUILDER}: {exc}") from exc
        if returncode != 0:
            raise BuildError(f"{BUILDER} exited with code {returncode}", stdout, stderr, returncode)

    def _stream(self, cmd: List[str]) -> Tuple[int, str, str]:
        """Echo builder output as it arrives while keeping a copy for error reports."""
        lines: List[str] = []
        proc = subprocess.Popen(
            cmd,
            cwd=self.cfg.config_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        assert proc.stdout is not None
        with proc.stdout:
            for line in proc.stdout:
                print(line, end="", flush=True)
                lines.append(line)
        return proc.wait(), "".join(lines), ""

    def ensure_disk_image(self) -> Path:
        """Create the shared placeholder disk once; guests only ever see a transient overlay."""
        path = self.cfg.disk_image_path
        with file_lock(self.cfg.locks_dir, DISK_IMAGE_LOCK):
            if path.exists():
                return path
            log("INFO", f"Creating placeholder disk {path} ({DISK_IMAGE_SIZE})")
            try:
                run(
                    [DISK_TOOL, "create", "-f", DISK_IMAGE_FORMAT, str(path), DISK_IMAGE_SIZE],
                    capture_output=True,
                )
            except subprocess.CalledProcessError as exc:
                raise BuildError(f"{DISK_TOOL} create failed", exc.stdout or "", exc.stderr or "", exc.returncode)
            except OSError as exc:
                raise BuildError(f"Failed to launch {DISK_TOOL}: {exc}") from exc
            path.chmod(DISK_IMAGE_MODE)
        return path

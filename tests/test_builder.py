"""Tests for appvm.builder module."""

from __future__ import annotations

import stat
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from appvm.builder import BuildPipeline, parse_registration_info
from appvm.exceptions import BuildError, ParseError, ResolutionError
from appvm.models import SpecLocation

RUN_SCRIPT = """#! /nix/store/xyz-bash/bin/bash
exec qemu-kvm -kernel ${NIXPKGS_QEMU_KERNEL_nixos:-/nix/store/abc-nixos-system/kernel} \\
  -append "$(cat /nix/store/abc-nixos-system/kernel-params) init=/nix/store/abc-nixos-system/init regInfo=/nix/store/def-closure-info/registration console=ttyS0 $QEMU_KERNEL_PARAMS"
"""


def _fake_result(tmp_path, script=RUN_SCRIPT):
    """Lay out what nix-build leaves behind: an out dir with system and bin/run-nixos-vm."""
    out = tmp_path / "store" / "out-vm"
    system = tmp_path / "store" / "nixos-system"
    system.mkdir(parents=True)
    (out / "bin").mkdir(parents=True)
    (out / "system").symlink_to(system)
    (out / "bin" / "run-nixos-vm").write_text(script)
    return out, system


@pytest.fixture
def pipeline(app_config):
    return BuildPipeline(app_config)


@pytest.fixture
def local_location(tmp_path):
    path = tmp_path / "repo-a" / "nix" / "chromium.nix"
    return SpecLocation(kind="local", name="chromium", path=path)


class TestParseRegistrationInfo:
    def test_single_match(self):
        assert parse_registration_info(RUN_SCRIPT) == Path("/nix/store/def-closure-info/registration")

    def test_no_match(self):
        with pytest.raises(ParseError, match="should be one reginfo"):
            parse_registration_info("exec qemu-kvm")

    def test_two_matches(self):
        text = "regInfo=/nix/store/a/registration regInfo=/nix/store/b/registration"
        with pytest.raises(ParseError, match="should be one reginfo"):
            parse_registration_info(text)


class TestBuild:
    def _fake_run(self, out, returncode=0, stdout="", stderr=""):
        def _run(cmd, **kwargs):
            link = Path(cmd[cmd.index("--out-link") + 1])
            if returncode == 0:
                link.symlink_to(out)
            return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

        return _run

    def test_success(self, pipeline, local_location, app_config, tmp_path):
        out, system = _fake_result(tmp_path)
        app_config.disk_image_path.write_text("")
        with patch("appvm.builder.subprocess.run", side_effect=self._fake_run(out)) as mock_run:
            artifact = pipeline.build(local_location)
        cmd = mock_run.call_args[0][0]
        assert cmd[:4] == ["nix-build", "<nixpkgs/nixos>", "-A", "config.system.build.vm"]
        assert f"nixos-config={local_location.path}" in cmd
        assert str(app_config.config_dir) in cmd
        assert artifact.system_path == system.resolve()
        assert artifact.reginfo_path == Path("/nix/store/def-closure-info/registration")
        assert artifact.disk_image_path == app_config.disk_image_path
        assert not (app_config.config_dir / "result-chromium").exists()

    def test_failure_carries_output(self, pipeline, local_location, tmp_path):
        out, _ = _fake_result(tmp_path)
        fake = self._fake_run(out, returncode=1, stdout="building...", stderr="error: attribute missing")
        with patch("appvm.builder.subprocess.run", side_effect=fake):
            with pytest.raises(BuildError) as exc:
                pipeline.build(local_location)
        assert exc.value.returncode == 1
        assert "building..." in str(exc.value)
        assert "error: attribute missing" in str(exc.value)

    def test_launch_failure(self, pipeline, local_location):
        with patch("appvm.builder.subprocess.run", side_effect=FileNotFoundError("nix-build")):
            with pytest.raises(BuildError, match="Failed to launch nix-build"):
                pipeline.build(local_location)

    def test_missing_result_link(self, pipeline, local_location):
        def _run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 0, "", "")

        with patch("appvm.builder.subprocess.run", side_effect=_run):
            with pytest.raises(OSError):
                pipeline.build(local_location)

    def test_bad_run_script_still_removes_link(self, pipeline, local_location, app_config, tmp_path):
        out, _ = _fake_result(tmp_path, script="exec qemu-kvm\n")
        with patch("appvm.builder.subprocess.run", side_effect=self._fake_run(out)):
            with pytest.raises(ParseError):
                pipeline.build(local_location)
        assert not (app_config.config_dir / "result-chromium").is_symlink()

    def test_verbose_streams_output(self, pipeline, local_location, app_config, tmp_path, capsys):
        out, _ = _fake_result(tmp_path)
        app_config.disk_image_path.write_text("")
        link = app_config.config_dir / "result-chromium"

        class FakePopen:
            def __init__(self, cmd, **kwargs):
                link.symlink_to(out)
                self.stdout = iter_lines(["these derivations will be built:\n", "done\n"])

            def wait(self):
                return 0

        with patch("appvm.builder.subprocess.Popen", FakePopen):
            pipeline.build(local_location, verbose=True)
        assert "these derivations will be built:" in capsys.readouterr().out


class iter_lines(list):
    """List of lines usable as a context-managed pipe."""

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class TestMaterialize:
    def test_local_path_returned(self, pipeline, local_location):
        assert pipeline.materialize(local_location) == local_location.path

    def test_remote_fetched_through_nix_eval(self, pipeline):
        location = SpecLocation(kind="remote", name="foo", owner="x", repo="y", expression="(fetch)")
        done = subprocess.CompletedProcess(["nix"], 0, "/nix/store/xyz-foo.nix", "")
        with patch("appvm.builder.run", return_value=done) as mock_run:
            assert pipeline.materialize(location) == Path("/nix/store/xyz-foo.nix")
        assert mock_run.call_args[0][0][-1] == "(fetch)"

    def test_remote_fetch_failure(self, pipeline):
        location = SpecLocation(kind="remote", name="foo", owner="x", repo="y", expression="(fetch)")
        failed = subprocess.CompletedProcess(["nix"], 1, "", "error: unable to download")
        with patch("appvm.builder.run", return_value=failed):
            with pytest.raises(ResolutionError, match="unable to download"):
                pipeline.materialize(location)


class TestEnsureDiskImage:
    def test_creates_read_only_image_once(self, pipeline, app_config):
        def _create(cmd, **kwargs):
            Path(cmd[4]).write_bytes(b"QFI")
            return subprocess.CompletedProcess(cmd, 0, "", "")

        with patch("appvm.builder.run", side_effect=_create) as mock_run:
            first = pipeline.ensure_disk_image()
            second = pipeline.ensure_disk_image()
        assert first == second == app_config.disk_image_path
        mock_run.assert_called_once()
        assert mock_run.call_args[0][0] == ["qemu-img", "create", "-f", "qcow2", str(first), "512M"]
        assert stat.S_IMODE(first.stat().st_mode) == 0o400

    def test_create_failure(self, pipeline):
        error = subprocess.CalledProcessError(1, ["qemu-img"], output="", stderr="no space")
        with patch("appvm.builder.run", side_effect=error):
            with pytest.raises(BuildError, match="no space"):
                pipeline.ensure_disk_image()

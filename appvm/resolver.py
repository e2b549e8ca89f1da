"""Application name to Nix expression resolution for appvm."""

from __future__ import annotations

from typing import List

from appvm.constants import REMOTE_FETCH_FORMAT, TEMPLATE_NAMES
from appvm.exceptions import ResolutionError
from appvm.models import AppConfig, SpecLocation
from appvm.utils import log


class SpecResolver:
    """Find the expression for an application across the configured search roots."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def resolve(self, name: str) -> SpecLocation:
        if not name or not name.strip():
            raise ResolutionError("Application name must not be empty")

        for root in self.cfg.search_paths:
            candidate = root / "nix" / f"{name}.nix"
            if candidate.is_file():
                log("DEBUG", f"Found expression for {name}: {candidate}")
                return SpecLocation(kind="local", name=name, path=candidate.resolve())
            log("INFO", f"Local repo {root / 'nix'} doesn't have a nix expression for {name}")

        log("INFO", f"No local expression for {name}; using remote repo config")
        return self.remote(name)

    def remote(self, name: str) -> SpecLocation:
        parts = name.split("/")
        if len(parts) == 3 and all(parts):
            owner, repo, app = parts
        else:
            owner, repo, app = self.cfg.default_owner, self.cfg.default_repo, name
        expression = REMOTE_FETCH_FORMAT.format(
            owner=owner,
            repo=repo,
            branch=self.cfg.default_branch,
            name=app,
        )
        return SpecLocation(kind="remote", name=app, owner=owner, repo=repo, expression=expression)

    def available(self) -> List[str]:
        """Return every application expression found in the search roots."""
        names = set()
        for root in self.cfg.search_paths:
            nix_dir = root / "nix"
            if not nix_dir.is_dir():
                continue
            for entry in nix_dir.glob("*.nix"):
                if entry.stem not in TEMPLATE_NAMES:
                    names.add(entry.stem)
        return sorted(names)

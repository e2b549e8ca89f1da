"""Autoballoon: resize running application VMs to their reported memory usage."""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from appvm.constants import MIB
from appvm.exceptions import ManagerError
from appvm.models import AppConfig, MemorySample
from appvm.utils import app_name_from_domain, log

TABLE_HEADER = ("Application VM", "Used memory", "Current memory", "Max memory", "New memory")


def compute_target_memory(used_bytes: int, max_bytes: int, min_bytes: int, adjust_percent: int) -> int:
    """Scale usage by ``adjust_percent`` and clamp it below ``max_bytes`` and at or above ``min_bytes``.

    The floor is applied last, so it wins when ``min_bytes > max_bytes - 1``.
    """
    new_bytes = int(used_bytes * (1 + adjust_percent / 100))
    if new_bytes > max_bytes:
        new_bytes = max_bytes - 1
    if new_bytes < min_bytes:
        new_bytes = min_bytes
    return new_bytes


def read_memory_used(path: Path) -> int:
    """Return the guest's reported usage in bytes; the file holds MiB and a trailing newline."""
    raw = path.read_text()
    try:
        used_mib = int(raw.strip())
    except ValueError:
        raise ManagerError(f"Unparsable memory usage in {path}: {raw!r}")
    if used_mib < 0:
        raise ManagerError(f"Negative memory usage in {path}: {used_mib}")
    return used_mib * MIB


def format_samples(samples: Sequence[MemorySample]) -> str:
    rows = [TABLE_HEADER] + [
        (s.name, str(s.used_bytes), str(s.current_bytes), str(s.max_bytes), str(s.new_bytes)) for s in samples
    ]
    widths = [max(len(row[idx]) for row in rows) for idx in range(len(TABLE_HEADER))]
    lines = []
    for pos, row in enumerate(rows):
        lines.append("  ".join(cell.ljust(widths[idx]) for idx, cell in enumerate(row)).rstrip())
        if pos == 0:
            lines.append("  ".join("-" * width for width in widths))
    return "\n".join(lines)


class AutoballoonController:
    def __init__(self, cfg: AppConfig, client) -> None:
        self.cfg = cfg
        self.client = client

    def run(self, min_bytes: int, adjust_percent: int) -> List[MemorySample]:
        """Resize every running application VM once. Any failure aborts the whole pass."""
        samples: List[MemorySample] = []
        for domain in self.client.list_domains():
            name = app_name_from_domain(domain.name())
            if name is None:
                continue
            used_bytes = read_memory_used(self.cfg.memory_used_path(name))
            max_bytes, current_bytes = self.client.memory_info(domain)
            new_bytes = compute_target_memory(used_bytes, max_bytes, min_bytes, adjust_percent)
            self.client.set_memory(domain, new_bytes)
            log("DEBUG", f"{name}: {current_bytes} -> {new_bytes} bytes")
            samples.append(MemorySample(name, used_bytes, current_bytes, max_bytes, new_bytes))
        return samples

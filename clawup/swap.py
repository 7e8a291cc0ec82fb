"""Swap sizing from physical memory."""

from __future__ import annotations

SWAP_CAP_MB = 16384


def compute_swap_size_mb(total_memory_mb: int) -> int:
    """Swap equal to RAM, capped at 16 GiB."""
    total = int(total_memory_mb)
    if total < 0:
        raise ValueError(f'total_memory_mb must be non-negative, got {total}')
    return min(total, SWAP_CAP_MB)


def parse_mem_total_mb(meminfo: str) -> int | None:
    for line in meminfo.splitlines():
        if line.startswith('MemTotal:'):
            parts = line.split()
            if len(parts) >= 2 and parts[1].isdigit():
                return int(parts[1]) // 1024
    return None

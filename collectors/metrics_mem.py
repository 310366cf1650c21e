from __future__ import annotations

from typing import Dict

from errors import SourceUnavailable

PROC_MEMINFO = "/proc/meminfo"


def read_meminfo(path: str = PROC_MEMINFO) -> Dict[str, int]:
    """Return /proc/meminfo as {key: kB}."""
    out: Dict[str, int] = {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for line in fh:
                if ":" not in line:
                    continue
                key, rest = line.split(":", 1)
                parts = rest.split()
                if parts:
                    try:
                        out[key.strip()] = int(parts[0])
                    except ValueError:
                        continue
    except OSError as e:
        raise SourceUnavailable("proc_meminfo", str(e)) from e
    return out


def memory_used_mb(path: str = PROC_MEMINFO) -> int:
    """Used memory in MB, computed as MemTotal - MemAvailable."""
    info = read_meminfo(path)
    total = info.get("MemTotal")
    avail = info.get("MemAvailable")
    if total is None or avail is None:
        raise SourceUnavailable("proc_meminfo", "MemTotal/MemAvailable missing")
    return int(round(max(0, total - avail) / 1024.0))

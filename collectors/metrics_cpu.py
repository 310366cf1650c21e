from __future__ import annotations

import time
from typing import Callable, List, Tuple

from errors import SourceUnavailable

PROC_STAT = "/proc/stat"


def _parse_cpu_line(line: str) -> Tuple[int, int]:
    # cpu  user nice system idle iowait irq softirq steal guest guest_nice
    parts = line.split()
    nums: List[int] = []
    for x in parts[1:]:
        try:
            nums.append(int(x))
        except ValueError:
            break
    if len(nums) < 4:
        raise SourceUnavailable("proc_stat", f"short cpu line: {line!r}")
    idle = nums[3] + (nums[4] if len(nums) > 4 else 0)
    return sum(nums), idle


def read_cpu_times(path: str = PROC_STAT) -> Tuple[int, int]:
    """Return (total_jiffies, idle_jiffies) from the aggregated 'cpu ' line."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for line in fh:
                if line.startswith("cpu "):
                    return _parse_cpu_line(line)
    except OSError as e:
        raise SourceUnavailable("proc_stat", str(e)) from e
    raise SourceUnavailable("proc_stat", "no aggregated cpu line")


def cpu_usage_percent(
    interval: float = 1.0,
    path: str = PROC_STAT,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """CPU busy percent over `interval` seconds, from two /proc/stat samples.

    Blocks for `interval`. Returns 0.0 when the counters did not advance.
    """
    t0, i0 = read_cpu_times(path)
    sleep(interval)
    t1, i1 = read_cpu_times(path)
    dt = t1 - t0
    di = i1 - i0
    if dt <= 0:
        return 0.0
    used = (dt - di) * 100.0 / dt
    return round(max(0.0, min(100.0, used)), 2)

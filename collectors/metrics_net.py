from __future__ import annotations

from typing import Tuple

from errors import SourceUnavailable

PROC_NET_DEV = "/proc/net/dev"


def net_totals_bytes(path: str = PROC_NET_DEV) -> Tuple[int, int]:
    """Return (rx_bytes, tx_bytes) summed over every interface, loopback included.

    These are the kernel's cumulative counters, so they only go backwards when
    the host reboots.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            txt = fh.read()
    except OSError as e:
        raise SourceUnavailable("proc_net_dev", str(e)) from e

    rx = tx = 0
    for line in txt.splitlines():
        if ":" not in line:
            continue
        _, rest = line.split(":", 1)
        parts = rest.split()
        if len(parts) < 9:
            continue
        try:
            rx += int(parts[0])
            tx += int(parts[8])
        except ValueError:
            continue
    return rx, tx

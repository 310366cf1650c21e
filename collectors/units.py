from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from errors import SourceUnavailable

logger = logging.getLogger(__name__)

# Every unit the fleet owns is named moonfrp-<role>[-<name>].service
FLEET_UNIT_RE = re.compile(r"^moonfrp-.*\.service$")
# Only server/client/visitor units count towards the status payload
STATUS_UNIT_RE = re.compile(r"^moonfrp-(server|client|visitor)")

LIST_UNITS_CMD = ["systemctl", "list-units", "--type=service", "--all", "--no-pager", "--no-legend"]

Runner = Callable[[Sequence[str]], str]


@dataclass(frozen=True)
class UnitState:
    unit: str
    load: str
    active: str
    sub: str


def run_systemctl(cmd: Sequence[str], timeout: float = 5.0) -> str:
    try:
        res = subprocess.run(
            list(cmd), capture_output=True, text=True, timeout=timeout, check=False,
        )
    except FileNotFoundError as e:
        raise SourceUnavailable("systemctl", "not installed") from e
    except subprocess.TimeoutExpired as e:
        raise SourceUnavailable("systemctl", f"timed out after {timeout}s") from e
    except OSError as e:
        raise SourceUnavailable("systemctl", str(e)) from e
    if res.returncode != 0 and not res.stdout:
        raise SourceUnavailable("systemctl", (res.stderr or "").strip() or f"exit {res.returncode}")
    return res.stdout or ""


def parse_list_units(txt: str) -> List[UnitState]:
    """Parse `systemctl list-units --no-legend` rows (UNIT LOAD ACTIVE SUB DESCRIPTION)."""
    units: List[UnitState] = []
    for line in (txt or "").splitlines():
        parts = line.split()
        # failed units are prefixed with a bullet column
        while parts and parts[0] in ("●", "*", "○"):
            parts = parts[1:]
        if len(parts) < 4:
            continue
        units.append(UnitState(unit=parts[0], load=parts[1], active=parts[2], sub=parts[3]))
    return units


def list_units(pattern: "re.Pattern[str]" = FLEET_UNIT_RE, runner: Optional[Runner] = None) -> List[UnitState]:
    """Service units whose name matches `pattern`. Raises SourceUnavailable."""
    txt = (runner or run_systemctl)(LIST_UNITS_CMD)
    return [u for u in parse_list_units(txt) if pattern.search(u.unit)]


def fleet_unit_counts(units: Iterable[UnitState]) -> Dict[str, int]:
    """Counts used by the metrics exporter: total / active / failed."""
    total = active = failed = 0
    for u in units:
        total += 1
        if u.active == "active":
            active += 1
        elif u.active == "failed":
            failed += 1
    return {"total": total, "active": active, "failed": failed}


def status_unit_counts(units: Iterable[UnitState]) -> Dict[str, int]:
    """Counts used by the status payload: active / failed / inactive."""
    out = {"active": 0, "failed": 0, "inactive": 0}
    for u in units:
        state = u.active
        if state in ("active", "running"):
            out["active"] += 1
        elif state == "failed":
            out["failed"] += 1
        elif state in ("inactive", "dead"):
            out["inactive"] += 1
    return out

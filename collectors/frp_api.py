from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import requests

from errors import SourceUnavailable

logger = logging.getLogger(__name__)

_NUMERIC_RE = re.compile(r"[-+]?\d+(?:\.\d+)?")
# frps has used both spellings across releases
_CONN_KEYS = ("cur_conns", "curConns", "current_conns", "currentConns", "conns")


@dataclass(frozen=True)
class TunnelRecord:
    name: str
    kind: str
    cur_conns: int = 0


def _coerce_int(value: Any) -> Optional[int]:
    """Best-effort int; None for missing, non-numeric or non-finite values."""
    if isinstance(value, bool):
        return int(value)
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        num = value
    else:
        match = _NUMERIC_RE.search(str(value))
        if not match:
            return None
        try:
            num = float(match.group(0))
        except ValueError:
            return None
    if not math.isfinite(num):
        return None
    try:
        return int(num)
    except (OverflowError, ValueError):
        return None


def parse_proxy_records(payload: Any, kind: str) -> List[TunnelRecord]:
    """Turn a /api/proxy/<kind> body into records; unknown shapes yield [].

    Accepts {"proxies": [...]} as served by frps, or a bare list. Records
    without a name are skipped; a missing connection count means 0.
    """
    if isinstance(payload, dict):
        items = payload.get("proxies")
    else:
        items = payload
    if not isinstance(items, list):
        return []

    records: List[TunnelRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        conns = 0
        for key in _CONN_KEYS:
            val = _coerce_int(item.get(key))
            if val is not None:
                conns = max(0, val)
                break
        records.append(TunnelRecord(name=name, kind=kind, cur_conns=conns))
    return records


def fetch_proxies(
    base_url: str,
    kind: str,
    session: Optional[requests.Session] = None,
    auth: Optional[Tuple[str, str]] = None,
    timeout: float = 1.0,
) -> List[TunnelRecord]:
    """GET {base_url}/api/proxy/{kind}. Raises SourceUnavailable when unreachable."""
    url = f"{base_url.rstrip('/')}/api/proxy/{kind}"
    getter = session.get if session is not None else requests.get
    try:
        res = getter(url, timeout=timeout, auth=auth)
    except requests.RequestException as e:
        raise SourceUnavailable(f"frp_api:{kind}", str(e)) from e
    if res.status_code != 200:
        raise SourceUnavailable(f"frp_api:{kind}", f"HTTP {res.status_code}")
    try:
        data = res.json()
    except ValueError as e:
        raise SourceUnavailable(f"frp_api:{kind}", "invalid JSON") from e
    try:
        return parse_proxy_records(data, kind)
    except (TypeError, ValueError, OverflowError) as e:
        raise SourceUnavailable(f"frp_api:{kind}", f"unexpected payload: {e}") from e

"""
Prometheus text exposition (format 0.0.4) for MetricsSnapshot.

`render_exposition` is pure: HELP, TYPE, then one line per sample, family by
family in snapshot order. Reading back (`parse_exposition`, for the dashboard
and for carrying counters across worker restarts) and `validate_exposition`
go through prometheus_client's text parser; a block it rejects is skipped
rather than failing the whole read.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Tuple

from prometheus_client.metrics_core import Metric
from prometheus_client.parser import text_string_to_metric_families

from utils import now_iso

from .model import METRIC_TYPES, Labels, LabelsInput, MetricsSnapshot, normalize_labels

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def format_value(value: float) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    v = float(value)
    if math.isnan(v):
        return "NaN"
    if math.isinf(v):
        return "+Inf" if v > 0 else "-Inf"
    if v.is_integer():
        return str(int(v))
    return repr(v)


def format_labels(labels: Labels) -> str:
    if not labels:
        return ""
    inner = ",".join(f'{k}="{_escape_label_value(v)}"' for k, v in labels)
    return "{" + inner + "}"


def render_exposition(snapshot: MetricsSnapshot, header: bool = True) -> str:
    lines: List[str] = []
    if header:
        lines.append(f"# MoonFRP Metrics - {now_iso(snapshot.timestamp)}")
    for definition, samples in snapshot.families():
        lines.append(f"# HELP {definition.name} {_escape_help(definition.help)}")
        lines.append(f"# TYPE {definition.name} {definition.type}")
        for s in samples:
            lines.append(f"{definition.name}{format_labels(s.labels)} {format_value(s.value)}")
    return "\n".join(lines) + "\n"


# ──────────────────────────────────────────────────────────────────────────────
# Reading it back
# ──────────────────────────────────────────────────────────────────────────────
# prometheus_client appends `_total` to counters declared without it, which
# would merge moonfrp_tunnel_errors into moonfrp_tunnel_errors_total. Parsing
# one family block at a time keeps samples under the name their TYPE declared.

_UNTYPED = ("unknown", "untyped")


def _header_name(line: str) -> Optional[str]:
    if line.startswith("# HELP ") or line.startswith("# TYPE "):
        parts = line.split(None, 3)
        return parts[2] if len(parts) > 2 else ""
    return None


def _family_blocks(text: str) -> List[Tuple[Optional[str], List[str]]]:
    """Split into (declared name, lines) blocks; leading untyped lines get None."""
    blocks: List[Tuple[Optional[str], List[str]]] = []
    name: Optional[str] = None
    lines: List[str] = []
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        header = _header_name(line)
        if header is not None and header != name:
            if lines:
                blocks.append((name, lines))
            name, lines = header, []
        lines.append(line)
    if lines:
        blocks.append((name, lines))
    return blocks


def _parse_block(lines: List[str]) -> List[Metric]:
    return list(text_string_to_metric_families("\n".join(lines) + "\n"))


def _samples(metric: Metric) -> List[Tuple[Labels, float]]:
    return [(tuple(s.labels.items()), float(s.value)) for s in metric.samples]


def parse_exposition(text: str) -> Dict[str, Dict]:
    """Return {name: {"help": str, "type": str, "samples": [(labels, value), ...]}}.

    A family block the parser rejects is skipped; the rest is still returned.
    """
    families: Dict[str, Dict] = {}

    def fam(name: str) -> Dict:
        return families.setdefault(name, {"help": "", "type": "", "samples": []})

    for declared, lines in _family_blocks(text):
        try:
            metrics = _parse_block(lines)
        except (ValueError, IndexError, KeyError) as e:
            logger.debug("Skipping unparseable metrics block %s: %s", declared, e)
            continue
        for metric in metrics:
            if declared and metric.type not in _UNTYPED:
                entry = fam(declared)
                entry["help"] = metric.documentation
                entry["type"] = metric.type
                entry["samples"].extend(_samples(metric))
                continue
            for s in metric.samples:
                fam(s.name)["samples"].append((tuple(s.labels.items()), float(s.value)))
    return families


def sample_value(parsed: Dict[str, Dict], name: str, labels: LabelsInput = None, default: float = 0.0) -> float:
    want = normalize_labels(labels)
    for got, value in parsed.get(name, {}).get("samples", []):
        if got == want:
            return value
    return default


def validate_exposition(text: str) -> List[str]:
    """Problems a scraper (or a reader of this file) would trip over; [] when clean.

    Grammar is checked by prometheus_client's parser. On top of that every
    family gets exactly one HELP and one TYPE, and every sample must belong to
    a typed family.
    """
    problems: List[str] = []
    seen: Dict[str, int] = {}
    for declared, lines in _family_blocks(text):
        if declared is not None:
            seen[declared] = seen.get(declared, 0) + 1
            if seen[declared] > 1:
                problems.append(f"{declared}: family declared more than once")
            for kind in ("HELP", "TYPE"):
                if sum(1 for ln in lines if ln.startswith(f"# {kind} ")) > 1:
                    problems.append(f"{declared}: duplicate {kind}")
        try:
            metrics = _parse_block(lines)
        except (ValueError, IndexError, KeyError) as e:
            problems.append(f"{declared or '<untyped>'}: unparseable ({e})")
            continue
        for metric in metrics:
            if metric.type in METRIC_TYPES:
                continue
            if metric.type in _UNTYPED:
                problems.extend(f"{s.name}: sample has no TYPE" for s in metric.samples)
            else:
                problems.append(f"{metric.name}: unsupported type {metric.type}")
    return problems


def split_samples(parsed: Dict[str, Dict], name: str) -> List[Tuple[Labels, float]]:
    return list(parsed.get(name, {}).get("samples", []))

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional, Union

from metrics.exposition import parse_exposition, sample_value, split_samples
from utils import fmt_age, read_text

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
_INACTIVE_VERSIONS = (UNKNOWN, "not installed", "")


def _as_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_status_fields(data: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """Normalize a status payload; every key is optional."""
    doc: Dict[str, Any] = {}
    if isinstance(data, dict):
        doc = data
    elif isinstance(data, str) and data.strip():
        try:
            loaded = json.loads(data)
            doc = loaded if isinstance(loaded, dict) else {}
        except ValueError:
            doc = {}
    return {
        "frp_version": str(doc.get("frp_version") or UNKNOWN),
        "total_configs": _as_int(doc.get("total_configs")),
        "total_proxies": _as_int(doc.get("total_proxies")),
        "active_services": _as_int(doc.get("active_services")),
        "failed_services": _as_int(doc.get("failed_services")),
        "inactive_services": _as_int(doc.get("inactive_services")),
    }


def render_status_summary(view: Optional[Dict[str, Any]]) -> str:
    """Fixed-format status block for the menu header. Never raises."""
    try:
        view = view or {}
        f = parse_status_fields(view.get("status"))
        lines = ["Status:"]

        if f["frp_version"] not in _INACTIVE_VERSIONS:
            lines.append(f"  FRP: Active ({f['frp_version']})")
        else:
            lines.append("  FRP: Inactive")

        if f["total_configs"] > 0:
            lines.append(f"  Configs: {f['total_configs']} (Proxies: {f['total_proxies']})")
        else:
            lines.append("  Configs: 0")

        parts = []
        if f["active_services"]:
            parts.append(f"{f['active_services']} active")
        if f["failed_services"]:
            parts.append(f"{f['failed_services']} failed")
        if f["inactive_services"]:
            parts.append(f"{f['inactive_services']} inactive")
        lines.append("  Services: " + (", ".join(parts) if parts else "none"))

        if view.get("refreshing"):
            lines.append("  ⟳ Refreshing...")
        elif view.get("stale"):
            age = view.get("age")
            suffix = f" ({fmt_age(age)} old)" if isinstance(age, (int, float)) else ""
            lines.append(f"  ⚠ Stale data{suffix}")
        return "\n".join(lines) + "\n"
    except Exception as e:
        logger.debug("render_status_summary failed: %s", e)
        return f"Status:\n  FRP: {UNKNOWN}\n"


def _tunnel_lines(parsed: Dict[str, Dict]) -> List[str]:
    out = []
    for labels, value in split_samples(parsed, "moonfrp_tunnel_connections_total"):
        d = dict(labels)
        name = d.get("tunnel", UNKNOWN)
        if name == "__overall__":
            continue
        out.append(f"  - {name} ({d.get('kind', UNKNOWN)}): {int(value)} conns")
    return out


def render_metrics_dashboard(metrics_file: str) -> str:
    """Summary of the current exposition file. Never raises."""
    header = "MoonFRP Metrics Dashboard"
    try:
        text = read_text(metrics_file)
        if not text:
            return f"{header}\nNo metrics available yet. The collector may still be starting.\n"

        try:
            updated = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(os.stat(metrics_file).st_mtime))
        except OSError:
            updated = UNKNOWN

        p = parse_exposition(text)

        def v(name: str) -> float:
            return sample_value(p, name, default=0.0)

        lines = [
            f"{header} (source: {metrics_file})",
            f"Updated: {updated}",
            "",
            "Services: total=%d active=%d failed=%d" % (
                v("moonfrp_services_total"), v("moonfrp_services_active"), v("moonfrp_services_failed")),
            "System: cpu=%.2f%% mem=%d MB" % (v("moonfrp_cpu_usage_percent"), v("moonfrp_memory_used_megabytes")),
            "Network: rx=%d bytes tx=%d bytes" % (v("moonfrp_net_rx_bytes_total"), v("moonfrp_net_tx_bytes_total")),
            "Tunnels: count=%d errors=%d alerts=%d" % (
                v("moonfrp_tunnel_count"), v("moonfrp_tunnel_errors"), v("moonfrp_alerts_tunnel_failures_total")),
        ]
        lines.extend(_tunnel_lines(p))
        return "\n".join(lines) + "\n"
    except Exception as e:
        logger.debug("render_metrics_dashboard failed: %s", e)
        return f"{header}\nMetrics unavailable ({UNKNOWN}).\n"


def render_prometheus_snippet(metrics_file: str, http_host: str, http_port: int) -> str:
    """Integration notes for node_exporter's textfile collector or a direct scrape."""
    metrics_dir = os.path.dirname(metrics_file) or "."
    return f"""# Option 1: node_exporter textfile collector
#
# [Service]
# Environment="NODE_EXPORTER_TEXTFILE_DIRECTORY={metrics_dir}"
#
# or point the collector at node_exporter's directory instead:
#   METRICS_DIR=/var/lib/node_exporter/textfile_collector
#   METRICS_FILE=$METRICS_DIR/moonfrp_metrics.prom
#
# Option 2: scrape `moonfrp-observe serve` directly (prometheus.yml)
scrape_configs:
  - job_name: moonfrp
    metrics_path: /metrics
    static_configs:
      - targets: ["{http_host}:{http_port}"]
"""

"""Tests for the text renderers."""

from __future__ import annotations

from services.dashboard_view import (
    parse_status_fields,
    render_metrics_dashboard,
    render_prometheus_snippet,
    render_status_summary,
)

EXPOSITION = """\
# MoonFRP Metrics - 2024-01-01T00:00:00Z
# HELP moonfrp_services_total x
# TYPE moonfrp_services_total gauge
moonfrp_services_total 3
# TYPE moonfrp_services_active gauge
moonfrp_services_active 2
# TYPE moonfrp_services_failed gauge
moonfrp_services_failed 1
# TYPE moonfrp_cpu_usage_percent gauge
moonfrp_cpu_usage_percent 12.5
# TYPE moonfrp_memory_used_megabytes gauge
moonfrp_memory_used_megabytes 512
# TYPE moonfrp_net_rx_bytes_total counter
moonfrp_net_rx_bytes_total 100
# TYPE moonfrp_net_tx_bytes_total counter
moonfrp_net_tx_bytes_total 50
# TYPE moonfrp_tunnel_connections_total gauge
moonfrp_tunnel_connections_total{tunnel="web",kind="http"} 4
# TYPE moonfrp_tunnel_count gauge
moonfrp_tunnel_count 1
# TYPE moonfrp_tunnel_errors counter
moonfrp_tunnel_errors 0
# TYPE moonfrp_alerts_tunnel_failures_total counter
moonfrp_alerts_tunnel_failures_total 7
"""


def test_dashboard_without_metrics_file(tmp_path) -> None:
    out = render_metrics_dashboard(str(tmp_path / "missing.prom"))
    assert "No metrics available yet. The collector may still be starting." in out


def test_dashboard_summary_lines(tmp_path) -> None:
    f = tmp_path / "m.prom"
    f.write_text(EXPOSITION)
    out = render_metrics_dashboard(str(f))
    assert "Services: total=3 active=2 failed=1" in out
    assert "System: cpu=12.50% mem=512 MB" in out
    assert "Network: rx=100 bytes tx=50 bytes" in out
    assert "Tunnels: count=1 errors=0 alerts=7" in out
    assert "  - web (http): 4 conns" in out


def test_dashboard_tolerates_partial_file(tmp_path) -> None:
    f = tmp_path / "m.prom"
    f.write_text("# TYPE moonfrp_tunnel_count gauge\nmoonfrp_tunnel_count 2\n")
    out = render_metrics_dashboard(str(f))
    assert "Services: total=0 active=0 failed=0" in out
    assert "Tunnels: count=2" in out


def test_parse_status_fields_defaults() -> None:
    assert parse_status_fields("not json") == {
        "frp_version": "unknown",
        "total_configs": 0,
        "total_proxies": 0,
        "active_services": 0,
        "failed_services": 0,
        "inactive_services": 0,
    }
    assert parse_status_fields('{"total_configs": "3"}')["total_configs"] == 3


def test_status_summary_active_and_stale() -> None:
    view = {
        "status": {"frp_version": "v0.52.3", "total_configs": 2, "total_proxies": 5, "active_services": 1},
        "stale": True,
        "refreshing": False,
        "age": 75,
    }
    out = render_status_summary(view)
    assert "  FRP: Active (v0.52.3)" in out
    assert "  Configs: 2 (Proxies: 5)" in out
    assert "  Services: 1 active" in out
    assert "Stale data (1m 15s old)" in out


def test_status_summary_inactive_and_refreshing() -> None:
    out = render_status_summary({"status": {"frp_version": "not installed"}, "refreshing": True})
    assert "  FRP: Inactive" in out
    assert "  Configs: 0" in out
    assert "  Services: none" in out
    assert "Refreshing..." in out


def test_status_summary_never_raises() -> None:
    assert render_status_summary(None).startswith("Status:")


def test_prometheus_snippet_mentions_both_integrations() -> None:
    out = render_prometheus_snippet("/var/lib/moonfrp/metrics/moonfrp_metrics.prom", "127.0.0.1", 9150)
    assert "NODE_EXPORTER_TEXTFILE_DIRECTORY=/var/lib/moonfrp/metrics" in out
    assert '"127.0.0.1:9150"' in out

"""Tests for the metrics model and the Prometheus text format."""

from __future__ import annotations

import pytest
from prometheus_client.parser import text_string_to_metric_families

from metrics.exposition import (
    format_value,
    parse_exposition,
    render_exposition,
    sample_value,
    validate_exposition,
)
from metrics.model import COUNTER, GAUGE, MetricDefinition, MetricsSnapshot

UP = MetricDefinition("demo_up", "Demo gauge", GAUGE)
HITS = MetricDefinition("demo_hits_total", "Demo counter", COUNTER)


def test_definition_rejects_bad_names_and_types() -> None:
    with pytest.raises(ValueError):
        MetricDefinition("1bad", "x", GAUGE)
    with pytest.raises(ValueError):
        MetricDefinition("ok_name", "x", "histogram")


def test_counter_cannot_be_negative() -> None:
    snap = MetricsSnapshot()
    with pytest.raises(ValueError):
        snap.add(HITS, -1)


def test_render_help_type_then_samples() -> None:
    snap = MetricsSnapshot(timestamp=0)
    snap.add(UP, 1)
    snap.add(HITS, 5, {"tunnel": "web", "kind": "tcp"})
    lines = render_exposition(snap).splitlines()
    assert lines == [
        "# MoonFRP Metrics - 1970-01-01T00:00:00Z",
        "# HELP demo_up Demo gauge",
        "# TYPE demo_up gauge",
        "demo_up 1",
        "# HELP demo_hits_total Demo counter",
        "# TYPE demo_hits_total counter",
        'demo_hits_total{tunnel="web",kind="tcp"} 5',
    ]


def test_declared_family_without_samples_is_still_valid() -> None:
    snap = MetricsSnapshot()
    snap.declare(HITS)
    text = render_exposition(snap)
    assert "# TYPE demo_hits_total counter" in text
    assert validate_exposition(text) == []


def test_label_values_are_escaped_and_read_back() -> None:
    snap = MetricsSnapshot()
    snap.add(UP, 2, {"tunnel": 'we"b\\x\ny'})
    text = render_exposition(snap)
    assert 'tunnel="we\\"b\\\\x\\ny"' in text
    assert validate_exposition(text) == []
    parsed = parse_exposition(text)
    assert sample_value(parsed, "demo_up", {"tunnel": 'we"b\\x\ny'}) == 2


def test_format_value() -> None:
    assert format_value(3) == "3"
    assert format_value(3.0) == "3"
    assert format_value(12.5) == "12.5"
    assert format_value(float("nan")) == "NaN"
    assert format_value(float("inf")) == "+Inf"


def test_rendered_text_reads_back_through_prometheus_client() -> None:
    snap = MetricsSnapshot(timestamp=0)
    snap.add(UP, 1)
    snap.add(HITS, 5, {"tunnel": "web", "kind": "tcp"})
    families = {m.name: m for m in text_string_to_metric_families(render_exposition(snap))}
    assert families["demo_up"].type == "gauge"
    assert families["demo_hits"].type == "counter"
    assert families["demo_hits"].samples[0].labels == {"tunnel": "web", "kind": "tcp"}


def test_counter_without_total_suffix_keeps_its_own_name() -> None:
    legacy = MetricDefinition("demo_errors", "Legacy counter", COUNTER)
    snap = MetricsSnapshot()
    snap.add(legacy, 2)
    snap.add(MetricDefinition("demo_errors_total", "Per item", COUNTER), 7, {"item": "a"})
    parsed = parse_exposition(render_exposition(snap))
    assert sample_value(parsed, "demo_errors") == 2
    assert sample_value(parsed, "demo_errors_total", {"item": "a"}) == 7
    assert parsed["demo_errors"]["type"] == "counter"


def test_validate_flags_duplicate_headers() -> None:
    text = "# HELP a x\n# TYPE a gauge\n# TYPE a gauge\na 1\n"
    assert "a: duplicate TYPE" in validate_exposition(text)

    text = "# TYPE a gauge\na 1\n# TYPE b gauge\nb 1\n# TYPE a gauge\na 2\n"
    assert "a: family declared more than once" in validate_exposition(text)


def test_validate_flags_untyped_samples() -> None:
    assert validate_exposition("b 2\n") == ["b: sample has no TYPE"]
    assert "b: sample has no TYPE" in validate_exposition("# TYPE a gauge\na 1\nb 2\n")


def test_validate_flags_bad_types_and_values() -> None:
    problems = validate_exposition("# TYPE c summary\nc_sum 1\nc_count 1\n")
    assert any("unsupported type summary" in p for p in problems)
    assert any("unparseable" in p for p in validate_exposition("# TYPE c summaryish\nc 1\n"))
    assert any("unparseable" in p for p in validate_exposition('# TYPE a gauge\na{x="1"} notanumber\n'))


def test_parse_skips_garbage_and_defaults() -> None:
    parsed = parse_exposition("garbage line here!\n# TYPE a gauge\na 4\n")
    assert sample_value(parsed, "a") == 4
    assert sample_value(parsed, "missing", default=-1) == -1
    assert parsed["a"]["type"] == "gauge"

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

COUNTER = "counter"
GAUGE = "gauge"
METRIC_TYPES = (COUNTER, GAUGE)

_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

Labels = Tuple[Tuple[str, str], ...]
LabelsInput = Union[None, Mapping[str, object], Sequence[Tuple[str, object]]]


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    help: str
    type: str

    def __post_init__(self) -> None:
        if not _NAME_RE.match(self.name):
            raise ValueError(f"invalid metric name: {self.name!r}")
        if self.type not in METRIC_TYPES:
            raise ValueError(f"invalid metric type for {self.name}: {self.type!r}")


@dataclass(frozen=True)
class MetricSample:
    definition: MetricDefinition
    value: float
    labels: Labels = ()

    @property
    def name(self) -> str:
        return self.definition.name


def normalize_labels(labels: LabelsInput) -> Labels:
    if not labels:
        return ()
    pairs = labels.items() if isinstance(labels, Mapping) else labels
    out = []
    for key, value in pairs:
        if not _LABEL_RE.match(str(key)):
            raise ValueError(f"invalid label name: {key!r}")
        out.append((str(key), str(value)))
    return tuple(out)


@dataclass
class MetricsSnapshot:
    """One collection cycle: samples grouped by family, in first-seen order."""

    timestamp: float = field(default_factory=time.time)
    _families: Dict[str, MetricDefinition] = field(default_factory=dict, repr=False)
    _samples: Dict[str, List[MetricSample]] = field(default_factory=dict, repr=False)

    def declare(self, definition: MetricDefinition) -> None:
        """Register a family so it is emitted (HELP/TYPE) even without samples."""
        known = self._families.get(definition.name)
        if known is None:
            self._families[definition.name] = definition
            self._samples[definition.name] = []
        elif known != definition:
            raise ValueError(f"conflicting definitions for {definition.name}")

    def add(self, definition: MetricDefinition, value: float, labels: LabelsInput = None) -> MetricSample:
        if definition.type == COUNTER and value < 0:
            raise ValueError(f"counter {definition.name} cannot be negative: {value}")
        self.declare(definition)
        sample = MetricSample(definition=definition, value=value, labels=normalize_labels(labels))
        self._samples[definition.name].append(sample)
        return sample

    def extend(self, other: "MetricsSnapshot") -> None:
        for definition, samples in other.families():
            self.declare(definition)
            self._samples[definition.name].extend(samples)

    def families(self) -> List[Tuple[MetricDefinition, List[MetricSample]]]:
        return [(d, list(self._samples[name])) for name, d in self._families.items()]

    @property
    def samples(self) -> List[MetricSample]:
        return [s for _, samples in self.families() for s in samples]

    def value(self, name: str, labels: LabelsInput = None) -> Optional[float]:
        want = normalize_labels(labels)
        for s in self._samples.get(name, ()):
            if s.labels == want:
                return s.value
        return None

    def names(self) -> Iterable[str]:
        return list(self._families)

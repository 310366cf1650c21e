from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from collectors import units
from collectors.config_index import query_index_counts
from collectors.frp_version import UNKNOWN, cached_frp_version
from errors import MalformedPayload, SourceUnavailable
from settings import Settings

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "frp_version",
    "total_configs",
    "total_proxies",
    "active_services",
    "failed_services",
    "inactive_services",
)

FALLBACK_FIELDS: Dict[str, Any] = {
    "frp_version": UNKNOWN,
    "total_configs": 0,
    "total_proxies": 0,
    "active_services": 0,
    "failed_services": 0,
    "inactive_services": 0,
}


def dump_payload(fields: Dict[str, Any]) -> str:
    return json.dumps(fields, separators=(",", ":"))


FALLBACK_PAYLOAD = dump_payload(FALLBACK_FIELDS)


@dataclass
class PayloadResult:
    payload: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def validate_payload(text: str) -> Dict[str, Any]:
    """Structural check before anything is cached. Raises MalformedPayload."""
    stripped = (text or "").strip()
    if not stripped.startswith("{") or not stripped.endswith("}"):
        raise MalformedPayload("payload is not a JSON object")
    try:
        doc = json.loads(stripped)
    except ValueError as e:
        raise MalformedPayload(f"invalid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise MalformedPayload("payload is not a JSON object")
    missing = [k for k in REQUIRED_KEYS if k not in doc]
    if missing:
        raise MalformedPayload(f"missing required fields: {', '.join(missing)}")
    return doc


def collect_status_fields(
    settings: Settings,
    unit_runner: Optional[units.Runner] = None,
    version_reader: Optional[Callable[[], str]] = None,
) -> Dict[str, Any]:
    """Query systemd, the config index and the FRP binaries; zeros on any failure."""
    fields = dict(FALLBACK_FIELDS)

    try:
        configs, proxies = query_index_counts(settings.index_db)
        fields["total_configs"] = configs
        fields["total_proxies"] = proxies
    except SourceUnavailable as e:
        logger.debug("Config index unavailable: %s", e)
    except Exception as e:
        logger.warning("Config index query failed: %s", e)

    try:
        counts = units.status_unit_counts(units.list_units(units.STATUS_UNIT_RE, runner=unit_runner))
        fields["active_services"] = counts["active"]
        fields["failed_services"] = counts["failed"]
        fields["inactive_services"] = counts["inactive"]
    except SourceUnavailable as e:
        logger.debug("Service listing unavailable: %s", e)
    except Exception as e:
        logger.warning("Service listing failed: %s", e)

    try:
        read_version = version_reader or (lambda: cached_frp_version(settings.state_dir, settings.frp_dir))
        fields["frp_version"] = read_version() or UNKNOWN
    except Exception as e:
        logger.warning("FRP version lookup failed: %s", e)

    return fields


def generate_status_payload(
    settings: Settings,
    collect: Optional[Callable[[Settings], Dict[str, Any]]] = None,
) -> PayloadResult:
    """Build the compact status JSON. Never raises.

    Malformed output is replaced by the all-unknown fallback and reported
    through `PayloadResult.error`.
    """
    try:
        fields = (collect or collect_status_fields)(settings)
        text = dump_payload(fields)
        validate_payload(text)
        return PayloadResult(payload=text)
    except MalformedPayload as e:
        logger.error("generate_status_payload: %s", e)
        return PayloadResult(payload=FALLBACK_PAYLOAD, error=str(e))
    except Exception as e:
        logger.error("generate_status_payload failed: %s", e, exc_info=True)
        return PayloadResult(payload=FALLBACK_PAYLOAD, error=str(e))

from __future__ import annotations

import logging
import os
import time
from typing import Dict, List, Optional

from utils import atomic_write_text, now_iso

from .exposition import render_exposition, validate_exposition
from .model import MetricsSnapshot

logger = logging.getLogger(__name__)

HISTORY_PREFIX = "metrics_"
HISTORY_SUFFIX = ".prom"


def history_path(history_dir: str, ts: float) -> str:
    return os.path.join(history_dir, f"{HISTORY_PREFIX}{now_iso(ts)}{HISTORY_SUFFIX}")


def commit(
    snapshot: MetricsSnapshot,
    metrics_file: str,
    history_dir: str,
    retention_hours: Optional[int] = None,
) -> bool:
    """Publish `snapshot` as the current exposition file and keep a history copy.

    Returns False when the rendered text does not validate or the current file
    could not be replaced; in that case the previous exposition stays in place
    and nothing else is touched.
    """
    text = render_exposition(snapshot)
    problems = validate_exposition(text)
    if problems:
        logger.error("Metrics commit aborted, invalid exposition: %s", "; ".join(problems))
        return False
    try:
        atomic_write_text(metrics_file, text)
    except OSError as e:
        logger.error("Metrics commit aborted, could not write %s: %s", metrics_file, e)
        return False

    hist = history_path(history_dir, snapshot.timestamp)
    try:
        atomic_write_text(hist, text)
    except OSError as e:
        logger.error("Could not write metrics history %s: %s", hist, e)

    if retention_hours:
        prune(history_dir, retention_hours)
    return True


def prune(history_dir: str, retention_hours: int, now: Optional[float] = None) -> List[str]:
    """Delete history files whose mtime is older than the retention window."""
    now = time.time() if now is None else now
    cutoff = now - retention_hours * 3600
    removed: List[str] = []
    try:
        names = os.listdir(history_dir)
    except FileNotFoundError:
        return removed
    except OSError as e:
        logger.warning("Could not list metrics history %s: %s", history_dir, e)
        return removed

    for name in names:
        path = os.path.join(history_dir, name)
        try:
            if not os.path.isfile(path):
                continue
            if os.stat(path).st_mtime < cutoff:
                os.remove(path)
                removed.append(path)
        except FileNotFoundError:
            continue  # pruned concurrently by another worker
        except OSError as e:
            logger.warning("Could not prune %s: %s", path, e)
    if removed:
        logger.info("Pruned %d metrics history file(s) older than %dh", len(removed), retention_hours)
    return removed


def list_history(history_dir: str) -> List[Dict]:
    """Retained snapshots, newest first."""
    items: List[Dict] = []
    try:
        names = os.listdir(history_dir)
    except OSError:
        return items
    for name in names:
        if not (name.startswith(HISTORY_PREFIX) and name.endswith(HISTORY_SUFFIX)):
            continue
        path = os.path.join(history_dir, name)
        try:
            st = os.stat(path)
        except OSError:
            continue
        items.append({
            "name": name,
            "taken_at": name[len(HISTORY_PREFIX):-len(HISTORY_SUFFIX)],
            "size": int(st.st_size),
            "mtime": int(st.st_mtime),
        })
    items.sort(key=lambda x: x["mtime"], reverse=True)
    return items

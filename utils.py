# utils.py: shared file helpers (atomic replace), timestamps and logging setup
from __future__ import annotations

import logging
import os
import sys
import tempfile
import time
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


# --------- atomic file replace ---------
def atomic_write_text(path: str, text: str, mode: int = 0o644) -> None:
    """Write `text` to `path` through a temp file in the same directory.

    Readers either see the previous content or the new content, never a
    partial write. Raises OSError on failure; the temp file is cleaned up and
    the previous file is left untouched.
    """
    directory = os.path.dirname(os.path.abspath(path)) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix="." + os.path.basename(path) + ".", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        # mkstemp creates 0600
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.remove(tmp)
        except OSError:
            pass
        raise


def read_text(path: str) -> Optional[str]:
    """Return the file content, or None when it does not exist / is unreadable."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            return fh.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        logging.getLogger(__name__).debug("read_text(%s) failed: %s", path, e)
        return None


def remove_quietly(path: str) -> bool:
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False


# --------- time ---------
def now_iso(ts: Optional[float] = None) -> str:
    """UTC timestamp like 2025-10-12T00:41:03Z."""
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time() if ts is None else ts))


def fmt_age(seconds: float) -> str:
    s = max(0, int(seconds))
    if s < 60:
        return f"{s}s"
    if s < 3600:
        return f"{s // 60}m {s % 60}s"
    return f"{s // 3600}h {(s % 3600) // 60}m"


# --------- logging ---------
def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger once per process (stdout + optional file)."""
    lvl = getattr(logging, str(level or "INFO").upper(), logging.INFO)
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        try:
            os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            print(f"[utils] Could not open log file {log_file}: {e}", file=sys.stderr)
    logging.basicConfig(level=lvl, format=LOG_FORMAT, handlers=handlers, force=True)
    return logging.getLogger("moonfrp")

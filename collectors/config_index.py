from __future__ import annotations

import os
from typing import Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from errors import SourceUnavailable

COUNT_SQL = "SELECT COUNT(*) FROM config_index"
PROXIES_SQL = "SELECT COALESCE(SUM(proxy_count), 0) FROM config_index"


def query_index_counts(db_path: str) -> Tuple[int, int]:
    """Return (total_configs, total_proxies) from the SQLite config index.

    The index is owned by the config tooling; this side only reads it.
    """
    if not db_path or not os.path.isfile(db_path):
        raise SourceUnavailable("config_index", f"no index at {db_path!r}")

    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False, "timeout": 2})
    try:
        with engine.connect() as conn:
            configs = conn.execute(text(COUNT_SQL)).scalar() or 0
            proxies = conn.execute(text(PROXIES_SQL)).scalar() or 0
    except SQLAlchemyError as e:
        raise SourceUnavailable("config_index", str(e)) from e
    finally:
        engine.dispose()
    return int(configs), int(proxies)

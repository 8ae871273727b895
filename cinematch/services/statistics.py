# services/statistics.py
"""
Statistics service: fetches the personal and global result windows in
parallel and hands them to the aggregation functions.
"""

from __future__ import annotations
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from cinematch.errors import StoreError
from cinematch.services.quiz_service import aggregation

logger = logging.getLogger(__name__)


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())


def get_statistics(
    store,
    identity_id: Optional[str],
    mine_limit: int = 14,
    global_limit: int = 24,
    timeout: Optional[float] = 10.0,
) -> Dict[str, Any]:
    """
    Build the statistics page payload.

    The two fetches are independent: if one fails its section comes back
    empty and the failure is listed under "errors". If both fail, StoreError
    is raised. `timeout` bounds the whole call: a fetch still running when
    it runs out is abandoned and counted as failed.

    Response:
    {
        "ok": true,
        "personal": {"history": [...], "series": [...]},
        "population": {"pie": [...], "split": {...}, "latest": [...]},
        "errors": {}
    }
    """
    errors: Dict[str, str] = {}
    mine: List[Any] = []
    everyone: List[Any] = []

    # No `with`: leaving the block would wait for a hung fetch.
    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="stats")
    deadline = None if timeout is None else time.monotonic() + timeout
    try:
        mine_future = pool.submit(store.results_for_identity, identity_id, mine_limit) if identity_id else None
        global_future = pool.submit(store.recent_results, global_limit)

        if mine_future is not None:
            try:
                mine = mine_future.result(timeout=_remaining(deadline))
            except Exception as e:
                errors["mine"] = str(e) or type(e).__name__
                logger.warning("[stats] personal results fetch failed for %s: %s", identity_id, errors["mine"])
        try:
            everyone = global_future.result(timeout=_remaining(deadline))
        except Exception as e:
            errors["global"] = str(e) or type(e).__name__
            logger.warning("[stats] global results fetch failed: %s", errors["global"])
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    if "global" in errors and (mine_future is None or "mine" in errors):
        raise StoreError("Unable to load statistics", {"errors": errors})

    stats = aggregation.build_statistics(mine, everyone)
    stats["ok"] = True
    stats["errors"] = errors
    return stats

from __future__ import annotations
import json
from typing import Any, Dict, Sequence

import structlog
from nats.aio.client import Client as NATS

from .config import get_settings

_settings = get_settings()
_nats = NATS()
logger = structlog.get_logger(__name__)


async def nats_connect():
    if not _nats.is_connected:
        servers: Sequence[str] = [u.strip() for u in _settings.nats_urls.split(",") if u.strip()]
        await _nats.connect(servers=servers, connect_timeout=2, max_reconnect_attempts=1)


async def nats_close():
    if _nats.is_connected:
        await _nats.drain()


async def publish_event(subject: str, evt: Dict[str, Any]) -> None:
    """Fire-and-forget. A broker outage never reaches the caller."""
    if not _settings.enable_nats_events:
        return
    try:
        await nats_connect()
        await _nats.publish(subject, json.dumps(evt).encode("utf-8"))
    except Exception:
        logger.warning("nats.publish_failed", subject=subject, exc_info=True)


async def publish_visit_recorded(evt: Dict[str, Any]) -> None:
    """
    evt = {
      "visit_id": str, "booth_id": str, "student_id": str,
      "visited_at": iso8601, "idempotency_key": "booth_id:student_id"
    }
    """
    await publish_event(_settings.nats_subject_visit, evt)


async def publish_points_awarded(evt: Dict[str, Any]) -> None:
    await publish_event(_settings.nats_subject_award, evt)

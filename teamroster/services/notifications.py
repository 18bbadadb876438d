# teamroster/services/notifications.py
from __future__ import annotations

import logging
from typing import Optional

import requests

from teamroster.core.config import settings

logger = logging.getLogger(__name__)


def notify_coach_assigned(coach_id: int, team_id: int, role: str = "primary", *, url: Optional[str] = None) -> bool:
    """
    Fire-and-forget webhook telling the notification service a coach was
    assigned. Returns whether the hook accepted it; never raises.
    """
    target = url or settings.COACH_NOTIFY_URL
    if not target:
        logger.info("coach notification skipped (no COACH_NOTIFY_URL) coach=%s team=%s role=%s", coach_id, team_id, role)
        return False

    payload = {"event": "coach_assigned", "coach_id": coach_id, "team_id": team_id, "role": role}
    try:
        resp = requests.post(target, json=payload, timeout=settings.COACH_NOTIFY_TIMEOUT)
    except requests.RequestException as exc:
        logger.warning("coach notification failed coach=%s team=%s: %s", coach_id, team_id, exc)
        return False

    if not resp.ok:
        # keep it sane
        logger.warning("coach notification rejected %s on %s :: %s", resp.status_code, target, resp.text[:500])
        return False
    return True

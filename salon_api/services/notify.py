# salon_api/services/notify.py
"""
Outbound alerts for bonus discrepancies.

A dispatcher is any callable taking the report dict and returning True when
the alert went out. The webhook variant posts to an e-mail relay; without a
configured URL the alert is only logged.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import requests
from flask import current_app, has_app_context

log = logging.getLogger(__name__)

Dispatcher = Callable[[Dict[str, Any]], bool]


class WebhookDispatcher:
    def __init__(self, url: str, timeout: float = 10, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, report: Dict[str, Any]) -> bool:
        summary = report.get("summary") or {}
        payload = {
            "type": "bonus_discrepancy",
            "subject": (
                f"Bonus discrepancy: branch {summary.get('branch_id')} "
                f"W{summary.get('week_number')} {summary.get('month')}/{summary.get('year')}"
            ),
            "report": report,
        }
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.error("bonus alert webhook unreachable: %s", e)
            return False
        if resp.status_code >= 400:
            log.error("bonus alert webhook returned %s: %s", resp.status_code, resp.text[:200])
            return False
        return True


def log_only_dispatcher(report: Dict[str, Any]) -> bool:
    summary = report.get("summary") or {}
    log.warning(
        "bonus alert not sent (no BONUS_ALERT_WEBHOOK_URL): weekly bonus %s has %s discrepancies",
        summary.get("weekly_bonus_id"), summary.get("discrepancy_count"),
    )
    return False


def default_dispatcher() -> Dispatcher:
    url = current_app.config.get("BONUS_ALERT_WEBHOOK_URL") if has_app_context() else None
    if not url:
        return log_only_dispatcher
    timeout = current_app.config.get("BONUS_ALERT_TIMEOUT", 10)
    return WebhookDispatcher(url, timeout=timeout)

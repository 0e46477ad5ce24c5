"""Notifier - forwards visitor "report down" submissions to an admin webhook.

Fire-and-forget: a report never touches incident state, and a failed
webhook is only logged.
"""
import logging
import re
from datetime import datetime
from typing import Optional, Tuple

import httpx

from ..config import settings
from ..utils.time_utils import utcnow

logger = logging.getLogger(__name__)

EMBED_COLOR = 0xFF5555

_BROWSER_PATTERNS = (
    (re.compile(r"Edg/(\d+)"), "Edge {}"),
    (re.compile(r"OPR/(\d+)"), "Opera {}"),
    (re.compile(r"Chrome/(\d+)"), "Chrome {}"),
    (re.compile(r"Firefox/(\d+)"), "Firefox {}"),
    (re.compile(r"Version/(\d+).+Safari/"), "Safari {}"),
)
_OS_PATTERNS = (
    ("Windows NT", "Windows"),
    ("Mac OS X", "macOS"),
    ("Android", "Android"),
    ("iPhone OS", "iOS"),
    ("Linux", "Linux"),
)


def parse_user_agent(user_agent: Optional[str]) -> Tuple[str, str]:
    """Rough (browser, os) guess from a User-Agent string."""
    ua = user_agent or ""

    browser = "Unknown"
    for pattern, label in _BROWSER_PATTERNS:
        match = pattern.search(ua)
        if match:
            browser = label.format(match.group(1))
            break
    else:
        if "Safari/" in ua:
            browser = "Safari"

    os_name = next((name for marker, name in _OS_PATTERNS if marker in ua), "Unknown")
    return browser, os_name


def client_ip(forwarded_for: Optional[str], real_ip: Optional[str]) -> str:
    """First address of X-Forwarded-For, else X-Real-IP."""
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return real_ip or "unknown"


def build_report_payload(
    service_id: int,
    service_name: str,
    ip: str,
    user_agent: Optional[str],
    reported_at: Optional[datetime] = None,
) -> dict:
    """Discord-style embed describing a visitor report."""
    reported_at = reported_at or utcnow()
    browser, os_name = parse_user_agent(user_agent)
    return {
        "content": "",
        "embeds": [
            {
                "title": "User Reported Service Down",
                "description": "A user reported an outage via the public status page.",
                "color": EMBED_COLOR,
                "fields": [
                    {"name": "Service", "value": service_name, "inline": True},
                    {"name": "Service ID", "value": str(service_id), "inline": True},
                    {"name": "Reporter IP", "value": ip, "inline": True},
                    {"name": "Browser", "value": browser, "inline": True},
                    {"name": "OS", "value": os_name, "inline": True},
                    {"name": "User Agent", "value": user_agent or "Unknown", "inline": False},
                    {"name": "Reported At", "value": reported_at.strftime("%Y-%m-%d %H:%M:%S UTC"), "inline": False},
                ],
                "footer": {"text": "StatusPage Monitor"},
                "timestamp": reported_at.isoformat() + "Z",
            }
        ],
    }


class NotifierService:
    """Posts JSON payloads to the configured admin webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._webhook_url = webhook_url
        self._transport = transport

    @property
    def webhook_url(self) -> str:
        # Tolerate values pasted as "=https://..."
        raw = self._webhook_url if self._webhook_url is not None else (settings.admin_webhook_url or "")
        return raw.strip().lstrip("=")

    async def send_webhook(self, payload: dict) -> bool:
        """Send a webhook POST request."""
        url = self.webhook_url
        if not url:
            logger.info(f"No webhook configured, report not forwarded: {payload.get('embeds', [{}])[0].get('fields')}")
            return False

        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Failed to send webhook: {e}")
            return False

        if response.status_code < 400:
            logger.info("Webhook sent for user report")
            return True
        logger.warning(f"Webhook returned {response.status_code}")
        return False

    async def report_down(
        self,
        service_id: int,
        service_name: str,
        ip: str,
        user_agent: Optional[str],
    ) -> bool:
        """Forward a visitor's "this service is down" report."""
        payload = build_report_payload(service_id, service_name, ip, user_agent)
        return await self.send_webhook(payload)


# Global instance
notifier_service = NotifierService()

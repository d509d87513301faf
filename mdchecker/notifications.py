"""
Push notifications for users whose tracked titles moved during a run
"""

from typing import Dict, Optional

import requests
import structlog

from mdchecker.constants import PUSHOVER_API
from mdchecker.metrics import notifications_total

logger = structlog.get_logger("notifications")


class SendResult:
    DELIVERED = "delivered"
    REJECTED = "rejected"
    SERVICE_UNAVAILABLE = "service_unavailable"


class PushoverClient:
    """Minimal Pushover messages API client"""

    def __init__(self, api_url: str = PUSHOVER_API, timeout: float = 10, session: requests.Session = None):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, app_token: str, user_token: str, text: str, title: Optional[str] = None) -> str:
        form = {"token": app_token, "user": user_token, "message": text}
        if title:
            form["title"] = title

        try:
            response = self.session.post(f"{self.api_url}/messages.json", data=form, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Pushover request failed: {e}")
            return SendResult.SERVICE_UNAVAILABLE

        if response.status_code == 200:
            try:
                accepted = response.json().get("status") == 1
            except ValueError:
                accepted = False
            return SendResult.DELIVERED if accepted else SendResult.REJECTED
        if 400 <= response.status_code < 500:
            logger.error(f"Pushover rejected the request (status {response.status_code}): {response.text}")
            return SendResult.REJECTED
        return SendResult.SERVICE_UNAVAILABLE


class NotificationDispatcher:
    """Sends each affected user a one-line summary after a run that moved watermarks"""

    def __init__(self, store, client: PushoverClient, default_app_token: Optional[str] = None):
        self.store = store
        self.client = client
        self.default_app_token = default_app_token

    @classmethod
    def from_settings(cls, store, settings: Dict):
        push = settings["push"]
        client = PushoverClient(api_url=push["api_url"], timeout=push["timeout"])
        return cls(store, client, default_app_token=push["app_token"])

    @staticmethod
    def format_message(count: int) -> str:
        noun = "title has" if count == 1 else "titles have"
        return f"{count} of your tracked {noun} new chapters"

    def dispatch(self, epoch: int) -> Dict[str, int]:
        """Notify every user with a title updated at `epoch`. Never raises for delivery problems."""
        outcomes = {SendResult.DELIVERED: 0, SendResult.REJECTED: 0, SendResult.SERVICE_UNAVAILABLE: 0, "skipped": 0}

        for target in self.store.users_to_notify(epoch):
            app_token = target.pushover_app_token_override or self.default_app_token
            if not target.pushover_token or not app_token or target.count <= 0:
                outcomes["skipped"] += 1
                continue

            result = self.client.send(app_token, target.pushover_token, self.format_message(target.count),
                                      title="New chapters")
            outcomes[result] += 1
            notifications_total.labels(outcome=result).inc()

            if result == SendResult.REJECTED:
                logger.error(f"Push notification for {target.user_id} rejected; check their tokens")
            elif result == SendResult.SERVICE_UNAVAILABLE:
                logger.warning(f"Push service unavailable, skipped notification for {target.user_id}")
            else:
                logger.debug(f"Notified {target.user_id} of {target.count} updated titles")

        if any(outcomes.values()):
            logger.info("Notification dispatch finished", **outcomes)
        return outcomes

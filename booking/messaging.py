from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

import httpx

from booking.core import config

logger = logging.getLogger(__name__)

WHATSAPP_CHANNEL = "whatsapp"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class Messenger(Protocol):
    def send(self, channel: str, destination: str, message: str) -> DeliveryStatus:
        ...


class MessagingError(RuntimeError):
    pass


def send_whatsapp_message(
    *,
    api_url: str,
    phone_number_id: str,
    access_token: str,
    to: str,
    text: str,
    timeout_seconds: float = 10.0,
) -> str | None:
    url = f"{api_url.rstrip('/')}/{phone_number_id}/messages"
    payload = {
        "messaging_product": "whatsapp",
        "to": to,
        "type": "text",
        "text": {"body": text, "preview_url": False},
    }
    headers = {"Authorization": f"Bearer {access_token}"}

    with httpx.Client(timeout=timeout_seconds) as client:
        r = client.post(url, json=payload, headers=headers)
        r.raise_for_status()
        data = r.json()
        messages = data.get("messages") or []
        if not messages:
            raise MessagingError(f"WhatsApp API error: {data}")
        return messages[0].get("id")


class WhatsAppMessenger:
    """Delivers text messages through the WhatsApp Cloud API.

    Never retries: a timeout or error response is reported as FAILED and the
    appointment stays eligible for a later tick.
    """

    def __init__(
        self,
        *,
        api_url: str,
        phone_number_id: str,
        access_token: str,
        timeout_seconds: float = 10.0,
    ):
        self.api_url = api_url
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds

    def send(self, channel: str, destination: str, message: str) -> DeliveryStatus:
        if channel != WHATSAPP_CHANNEL:
            logger.warning("Unsupported channel %s for WhatsApp messenger", channel)
            return DeliveryStatus.FAILED

        try:
            message_id = send_whatsapp_message(
                api_url=self.api_url,
                phone_number_id=self.phone_number_id,
                access_token=self.access_token,
                to=destination,
                text=message,
                timeout_seconds=self.timeout_seconds,
            )
        except (httpx.HTTPError, MessagingError, ValueError) as e:
            logger.warning("Failed to send WhatsApp message to %s (%s: %s)", destination, type(e).__name__, e)
            return DeliveryStatus.FAILED

        logger.info("WhatsApp message sent to %s (message_id=%s)", destination, message_id)
        return DeliveryStatus.SENT


class LogMessenger:
    """Development backend: logs the message instead of delivering it."""

    def send(self, channel: str, destination: str, message: str) -> DeliveryStatus:
        logger.info("[%s -> %s] %s", channel, destination, message)
        return DeliveryStatus.SENT


def build_messenger() -> Messenger:
    if config.MESSAGING_BACKEND == "whatsapp":
        return WhatsAppMessenger(
            api_url=config.WHATSAPP_API_URL,
            phone_number_id=config.WHATSAPP_PHONE_NUMBER_ID,
            access_token=config.WHATSAPP_ACCESS_TOKEN,
            timeout_seconds=config.MESSAGING_TIMEOUT_SECONDS,
        )
    return LogMessenger()

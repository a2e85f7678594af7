from __future__ import annotations

import os

import requests

from logging_config import get_logger
from utils.errors import DispatchError

logger = get_logger("sms")

ARKESEL_API_URL = os.getenv("ARKESEL_API_URL", "https://sms.arkesel.com/sms/api")
SMS_TIMEOUT_SECONDS = float(os.getenv("SMS_TIMEOUT_SECONDS", "15"))


def send_sms(*, to_phone: str, sender: str, message: str) -> dict:
    """
    Sends an SMS through the Arkesel HTTP API.
    Requires:
      - ARKESEL_API_KEY (read on every call; a missing key is a dispatch failure)
    """
    api_key = os.getenv("ARKESEL_API_KEY")
    if not api_key:
        logger.error("ARKESEL_API_KEY is not set", extra={"context": {"to": to_phone}})
        raise DispatchError("Failed to send SMS")

    try:
        resp = requests.get(
            ARKESEL_API_URL,
            params={
                "action": "send-sms",
                "api_key": api_key,
                "to": to_phone,
                "from": sender,
                "sms": message,
            },
            timeout=SMS_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.error("SMS request failed: %s", exc, extra={"context": {"to": to_phone}})
        raise DispatchError("Failed to send SMS") from exc

    if resp.status_code >= 300:
        logger.error(
            "SMS send failed (%s): %s", resp.status_code, resp.text, extra={"context": {"to": to_phone}}
        )
        raise DispatchError("Failed to send SMS")

    try:
        data = resp.json()
    except ValueError:
        data = {"raw": resp.text}
    logger.info("SMS sent", extra={"context": {"to": to_phone, "sender": sender}})
    return data

"""Delivery of OTP codes to users' phones."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from yogic_ledger.core.settings import settings
from yogic_ledger.services.audit import mask_mobile
from yogic_ledger.services.errors import MessagingError

logger = logging.getLogger(__name__)

HTTP_CREATED = 201


class MessagingTransport(Protocol):
    """Anything that can deliver a text message to an E.164 number."""

    def send(self, mobile_number: str, body: str) -> None: ...


def otp_message(code: str, expiry_seconds: int) -> str:
    minutes = max(1, expiry_seconds // 60)
    return (
        f"Your YogicMile verification code is: {code}\n\n"
        f"This code will expire in {minutes} minutes.\n\n"
        "Do not share this code with anyone."
    )


def _whatsapp_address(number: str) -> str:
    if number.startswith("whatsapp:"):
        return number
    return f"whatsapp:{number if number.startswith('+') else '+' + number}"


class TwilioWhatsAppTransport:
    """Sends messages through the Twilio Messages API on the WhatsApp channel."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._account_sid = account_sid
        self._from = _whatsapp_address(from_number)
        self._client = client or httpx.Client(
            base_url=base_url or settings.twilio_base_url,
            auth=(account_sid, auth_token),
            timeout=timeout or settings.messaging_timeout_seconds,
        )

    def send(self, mobile_number: str, body: str) -> None:
        path = f"/2010-04-01/Accounts/{self._account_sid}/Messages.json"
        try:
            response = self._client.post(
                path,
                data={"From": self._from, "To": _whatsapp_address(mobile_number), "Body": body},
            )
        except httpx.HTTPError as err:
            logger.error("Twilio request for %s failed: %s", mask_mobile(mobile_number), err)
            raise MessagingError("Failed to send WhatsApp message") from err

        if response.status_code != HTTP_CREATED:
            try:
                detail = response.json().get("message", "")
            except ValueError:
                detail = response.text
            logger.error(
                "Twilio rejected message to %s (%s): %s",
                mask_mobile(mobile_number),
                response.status_code,
                detail,
            )
            raise MessagingError(f"Failed to send WhatsApp message: {detail}")
        logger.info("Sent WhatsApp message to %s", mask_mobile(mobile_number))

    def close(self) -> None:
        self._client.close()


class ConsoleTransport:
    """Development transport that only logs; the code itself is never logged."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    def send(self, mobile_number: str, body: str) -> None:
        self.sent.append(mobile_number)
        logger.warning(
            "Twilio is not configured; message to %s was not delivered",
            mask_mobile(mobile_number),
        )


def get_messaging_transport() -> MessagingTransport:
    """Return the Twilio transport when configured, else the console fallback."""
    account_sid = settings.twilio_account_sid
    auth_token = settings.twilio_auth_token
    sender = settings.twilio_whatsapp_number
    if account_sid and auth_token and sender:
        return TwilioWhatsAppTransport(account_sid, auth_token, sender)
    return ConsoleTransport()

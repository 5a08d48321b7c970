"""
SMS delivery through an HTTP gateway.

SMS is optional: when the gateway is not configured every send is skipped and
reported as not sent.
"""
import re
import logging
from typing import Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

# Lao mobile numbers: 20xxxxxxxx or 30xxxxxxxx after stripping the 856 prefix
_LAO_MOBILE = re.compile(r"^(20|30)\d{8}$")


def format_phone_number(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    digits = re.sub(r"\D", "", str(phone))
    if digits.startswith("856"):
        digits = digits[3:]
    digits = digits.lstrip("0")
    if not _LAO_MOBILE.match(digits):
        return None
    return digits


def sms_configured() -> bool:
    return bool(
        settings.sms_enabled
        and settings.sms_api_url
        and settings.sms_client_id
        and settings.sms_secret_key
    )


class SMSService:
    @staticmethod
    async def send_sms(phone: Optional[str], message: str) -> bool:
        if not sms_configured():
            logger.debug("SMS gateway not configured, skipping send")
            return False

        formatted = format_phone_number(phone)
        if not formatted:
            logger.warning(f"Invalid phone number for SMS: {phone}")
            return False

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(settings.http_timeout_seconds),
                headers={"User-Agent": f"{settings.app_name}-API/1.0"}
            ) as client:
                response = await client.post(
                    settings.sms_api_url,
                    json={
                        "sender": settings.sms_sender,
                        "phone": formatted,
                        "message": message,
                    },
                    headers={
                        "Client-ID": settings.sms_client_id,
                        "Secret-Key": settings.sms_secret_key,
                    },
                )
                if response.status_code >= 400:
                    logger.error(
                        f"SMS gateway rejected message to {formatted}: {response.status_code}")
                    return False
                logger.info(f"SMS sent to {formatted}")
                return True
        except httpx.TimeoutException:
            logger.error("SMS gateway request timed out")
            return False
        except httpx.RequestError as e:
            logger.error(f"SMS gateway request error: {e}")
            return False

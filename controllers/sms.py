import httpx
from fastapi import Request

from core.config import Settings
from utils.state import State

BREVO_SMS_URL = "https://api.brevo.com/v3/transactionalSMS/sms"


class SmsSender:
    def __init__(self, settings: Settings):
        self.settings = settings

    async def send(self, to_phone_number: str, message: str) -> bool:
        if not self.settings.brevo_api_key:
            State.logger.warning(
                f"BREVO_API_KEY not set, skipping SMS to {to_phone_number}"
            )
            return False
        payload = {
            "type": "transactional",
            "sender": self.settings.sms_sender_name,
            "recipient": to_phone_number,
            "content": message,
        }
        headers = {
            "accept": "application/json",
            "api-key": self.settings.brevo_api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                response = await client.post(BREVO_SMS_URL, headers=headers, json=payload)
        except httpx.HTTPError as e:
            State.log_failure(f"sending SMS to {to_phone_number}", e)
            return False
        if response.status_code >= 400:
            State.logger.error(
                f"SMS provider rejected message to {to_phone_number}: {response.status_code}"
            )
            return False
        return True

    async def send_verification_code(self, to_phone_number: str, code: str) -> bool:
        return await self.send(
            to_phone_number, f"Your Trippz verification code is: {code}"
        )


def get_sms_sender(request: Request) -> SmsSender:
    return SmsSender(request.app.state.settings)

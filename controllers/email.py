import httpx
from fastapi import Request
from jinja2 import DictLoader, Environment, select_autoescape

from core.config import Settings
from utils.state import State

RESEND_URL = "https://api.resend.com/emails"

TEMPLATES = {
    "base.html": """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Trippz</title></head>
<body>
  <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background-color: #4F46E5; padding: 20px; text-align: center;">
      <h1 style="color: white; margin: 0;">Trippz</h1>
    </div>
    <div style="padding: 20px; background-color: #f9fafb;">
      {% block content %}{% endblock %}
    </div>
  </div>
</body>
</html>""",
    "verify_email.html": """{% extends "base.html" %}
{% block content %}
<p>Welcome to Trippz! Please confirm your email address.</p>
<p><a href="{{ frontend_url }}/verify-email?token={{ token }}">Verify email</a></p>
<p>This link expires in {{ expires_hours }} hours.</p>
{% endblock %}""",
    "reset_password.html": """{% extends "base.html" %}
{% block content %}
<p>We received a request to reset your password.</p>
<p><a href="{{ frontend_url }}/reset-password?token={{ token }}">Reset password</a></p>
<p>If you did not ask for this, you can ignore this email.</p>
{% endblock %}""",
}

SUBJECTS = {
    "verify_email.html": "Verify your email address",
    "reset_password.html": "Reset your password",
}


class Mailer:
    """Sends templated mail through Resend. Delivery failures are logged, never raised."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.env = Environment(
            loader=DictLoader(TEMPLATES), autoescape=select_autoescape(["html"])
        )

    def render(self, template_name: str, template_data: dict) -> str:
        template = self.env.get_template(template_name)
        return template.render(frontend_url=self.settings.frontend_url, **template_data)

    async def send(self, to_address: str, template_name: str, template_data: dict) -> bool:
        html = self.render(template_name, template_data)
        if not self.settings.resend_api_key:
            State.logger.warning(
                f"RESEND_API_KEY not set, skipping {template_name} mail to {to_address}"
            )
            return False
        payload = {
            "from": self.settings.mail_from,
            "to": [to_address],
            "subject": SUBJECTS.get(template_name, "Trippz"),
            "html": html,
        }
        headers = {"Authorization": f"Bearer {self.settings.resend_api_key}"}
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                response = await client.post(RESEND_URL, headers=headers, json=payload)
        except httpx.HTTPError as e:
            State.log_failure(f"sending {template_name} mail to {to_address}", e)
            return False
        if response.status_code != 200:
            State.logger.error(
                f"Mail provider rejected {template_name} to {to_address}: {response.status_code}"
            )
            return False
        State.logger.info(f"Sent {template_name} mail to {to_address}")
        return True


def get_mailer(request: Request) -> Mailer:
    return Mailer(request.app.state.settings)

"""
Resend Email Service for transactional emails

Templates: welcome, first model ready, subscription confirmation.
https://resend.com/docs/send-with-python
"""

from datetime import datetime, UTC
from typing import Optional

import resend
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from config.config import FRONTEND_URL, RESEND_API_KEY, RESEND_FROM_EMAIL, RESEND_FROM_NAME


DISCORD_URL = "https://discord.gg/fanova"


class EmailService:
    """
    Email service for user lifecycle emails via Resend

    Sending never raises: failures are logged and reported as False so the
    request that triggered the email is unaffected.
    """

    def __init__(self, api_key: str = RESEND_API_KEY):
        self.api_key = api_key
        self.from_email = RESEND_FROM_EMAIL
        self.from_name = RESEND_FROM_NAME

        if not self.api_key:
            logger.warning("⚠️ RESEND_API_KEY not set - email service disabled")
        else:
            resend.api_key = self.api_key

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def _send(self, to_email: str, subject: str, html: str, email_type: str) -> bool:
        if not self.is_available():
            logger.info(f"Email service disabled, skipping {email_type} email to {to_email}")
            return False

        params: resend.Emails.SendParams = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": [to_email],
            "subject": subject,
            "html": html,
            "tags": [{"name": "type", "value": email_type}],
        }

        try:
            response = await run_in_threadpool(resend.Emails.send, params)

            if response and "id" in response:
                logger.info(f"✅ {email_type} email sent to {to_email} (id: {response['id']})")
                return True

            logger.error(f"❌ Failed to send {email_type} email: {response}")
            return False

        except Exception as e:
            logger.exception(f"❌ Error sending {email_type} email via Resend: {e}")
            return False

    # ===========================
    # EMAILS
    # ===========================

    async def send_welcome_email(self, to_email: str, user_name: Optional[str] = None) -> bool:
        greeting = f"Hi {user_name}!" if user_name else "Hi!"
        body = f"""
            <h1>Welcome to Fanova! 🎨</h1>
            <h2>{greeting}</h2>
            <p>Thank you for joining Fanova, your AI-powered model creator. We're excited to have you on board!</p>
            <p>With Fanova, you can create stunning AI-generated models with consistent identity and high-quality results.</p>
            <h3>What you can do with Fanova:</h3>
            <ul>
                <li>Create AI models with custom attributes and features</li>
                <li>Generate consistent, high-quality images</li>
                <li>Chat with your models to generate new scenarios</li>
                <li>Access NSFW content generation (with subscription)</li>
                <li>Build and manage your model portfolio</li>
            </ul>
            <p>Ready to create your first AI model?</p>
            <p><a href="{FRONTEND_URL}/login" class="cta-button">Get Started</a></p>
        """
        return await self._send(
            to_email,
            "Welcome to Fanova - Your AI Model Creator",
            self._layout(body, "You're receiving this email because you signed up for Fanova."),
            "welcome",
        )

    async def send_first_model_email(
        self,
        to_email: str,
        model_id: str,
        model_name: str = "Your Model",
        user_name: Optional[str] = None,
    ) -> bool:
        greeting = f"Congratulations, {user_name}!" if user_name else "Congratulations!"
        model_url = f"{FRONTEND_URL}/model/{model_id}"
        body = f"""
            <h1>Your First Model is Ready!</h1>
            <h2>{greeting}</h2>
            <p>You've successfully created your first AI model with Fanova. This is an exciting milestone!</p>
            <div class="highlight-box"><p>Model: {model_name}</p></div>
            <p>Your model is now ready to generate amazing images with consistent identity and style.</p>
            <p><a href="{model_url}" class="cta-button">View Your Model</a></p>
            <h3>What's Next?</h3>
            <ul>
                <li><strong>Generate more images:</strong> Create variations and explore different scenarios</li>
                <li><strong>Use Chat mode:</strong> Describe what you want and let AI generate it</li>
                <li><strong>Upgrade your plan:</strong> Unlock NSFW content and more credits</li>
                <li><strong>Create more models:</strong> Build your AI model portfolio</li>
            </ul>
        """
        return await self._send(
            to_email,
            "🎉 Congratulations! Your First Model is Ready",
            self._layout(body, "Keep creating amazing AI models!"),
            "first_model",
        )

    async def send_subscription_confirmation_email(
        self,
        to_email: str,
        plan_name: str,
        credits: int,
        user_name: Optional[str] = None,
    ) -> bool:
        greeting = f"Thank you, {user_name}!" if user_name else "Thank you!"
        body = f"""
            <h1>Subscription Confirmed! ✨</h1>
            <h2>{greeting}</h2>
            <p>Your subscription to the <strong>{plan_name}</strong> plan has been confirmed. You now have access to premium features!</p>
            <div class="plan-details">
                <p>Plan: {plan_name}</p>
                <p>Monthly Credits: {credits}</p>
            </div>
            <p>Your credits have been added to your account and you can start creating amazing content right away.</p>
            <p><a href="{FRONTEND_URL}/dashboard" class="cta-button">Go to Dashboard</a></p>
        """
        return await self._send(
            to_email,
            f"Welcome to Fanova {plan_name} Plan!",
            self._layout(body),
            "subscription_confirmation",
        )

    @staticmethod
    def _layout(body: str, footer_note: str = "") -> str:
        year = datetime.now(UTC).year
        note = f"<br>{footer_note}" if footer_note else ""
        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
            line-height: 1.6;
            color: #1f2937;
            background: #f9fafb;
            padding: 40px 20px;
        }}
        .container {{
            max-width: 600px;
            margin: 0 auto;
            background: #ffffff;
            border-radius: 12px;
            padding: 32px;
        }}
        .cta-button {{
            display: inline-block;
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            color: #ffffff;
            padding: 14px 32px;
            border-radius: 8px;
            text-decoration: none;
            font-weight: 600;
        }}
        .footer {{
            margin-top: 32px;
            font-size: 12px;
            color: #6b7280;
        }}
    </style>
</head>
<body>
    <div class="container">
        {body}
        <p style="margin-top: 32px; font-size: 14px;">
            Need help? Join our <a href="{DISCORD_URL}" style="color: #667eea;">Discord community</a>.
        </p>
        <div class="footer">
            <p>© {year} Fanova. All rights reserved.{note}</p>
        </div>
    </div>
</body>
</html>
"""


# Global instance
email_service = EmailService()

"""Outbound email for registration codes.

Providers (AWS SES, Resend, console) are selected via EMAIL_PROVIDER.
The registration flow only sees the IMailer contract: one call, pass or fail.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from app.core.config import settings
from app.interfaces.mailer import IMailer

logger = logging.getLogger(__name__)


# =============================================================================
# Email Provider Interface
# =============================================================================

class EmailProvider(ABC):
    """Abstract base class for email providers."""

    name: str = "provider"

    @abstractmethod
    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None
    ) -> bool:
        """Send an email. Returns True on success, False on failure."""
        pass


class SESProvider(EmailProvider):
    """AWS SES email provider."""

    name = "ses"

    def __init__(self, region: str, from_address: str, configuration_set: Optional[str] = None):
        import boto3
        self.client = boto3.client('ses', region_name=region)
        self.from_address = from_address
        self.configuration_set = configuration_set

    def _send_sync(self, params: dict) -> dict:
        return self.client.send_email(**params)

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None
    ) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        body = {'Html': {'Data': html_body, 'Charset': 'UTF-8'}}
        if text_body:
            body['Text'] = {'Data': text_body, 'Charset': 'UTF-8'}

        params = {
            'Source': self.from_address,
            'Destination': {'ToAddresses': [to_email]},
            'Message': {
                'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                'Body': body
            }
        }
        if self.configuration_set:
            params['ConfigurationSetName'] = self.configuration_set

        try:
            # boto3 is blocking
            response = await asyncio.to_thread(self._send_sync, params)
        except ClientError as e:
            error = e.response.get('Error', {})
            logger.error(f"[SES] Error sending to {to_email}: {error.get('Code')} - {error.get('Message')}")
            return False
        except BotoCoreError as e:
            logger.error(f"[SES] Transport error sending to {to_email}: {e}")
            return False

        logger.info(f"[SES] Email sent to {to_email}, MessageId: {response.get('MessageId', 'unknown')}")
        return True


class ResendProvider(EmailProvider):
    """Resend email provider."""

    name = "resend"

    def __init__(self, api_key: Optional[str], from_address: str):
        if not api_key:
            raise ValueError("RESEND_API_KEY is required when using Resend provider")

        import resend
        resend.api_key = api_key
        self.resend = resend
        self.from_address = from_address

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None
    ) -> bool:
        params = {
            "from": self.from_address,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
        }
        if text_body:
            params["text"] = text_body

        try:
            response = await asyncio.to_thread(self.resend.Emails.send, params)
        except Exception as e:
            # resend raises its own error hierarchy plus transport errors
            logger.error(f"[Resend] Error sending to {to_email}: {e}")
            return False

        email_id = response.get('id', 'unknown') if isinstance(response, dict) else getattr(response, 'id', 'unknown')
        logger.info(f"[Resend] Email sent to {to_email}, ID: {email_id}")
        return True


class ConsoleProvider(EmailProvider):
    """Development provider. Logs the delivery, never the message body."""

    name = "console"

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None
    ) -> bool:
        logger.info(f"[Console] Email '{subject}' to {to_email} accepted (body withheld)")
        return True


def create_email_provider(provider_name: Optional[str] = None) -> EmailProvider:
    """Build the provider named by EMAIL_PROVIDER."""
    provider_name = (provider_name or settings.EMAIL_PROVIDER).lower()
    from_address = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"

    if provider_name == "ses":
        return SESProvider(settings.AWS_SES_REGION, from_address, settings.SES_CONFIGURATION_SET)
    if provider_name == "resend":
        return ResendProvider(settings.RESEND_API_KEY, from_address)
    if provider_name == "console":
        return ConsoleProvider()
    raise ValueError(f"Unknown email provider: {provider_name}. Use 'ses', 'resend' or 'console'.")


# =============================================================================
# Email Templates
# =============================================================================

def _create_otp_email_html(code: str, name: Optional[str], expiry_minutes: int) -> str:
    greeting = f"Hi {name}," if name else "Hi,"
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }}
            .container {{ background-color: #f9f9f9; border-radius: 10px; padding: 30px; }}
            .otp-code {{ font-size: 32px; font-weight: bold; color: #2e7d32; letter-spacing: 8px; text-align: center; margin: 20px 0; }}
            .footer {{ text-align: center; color: #7f8c8d; font-size: 12px; margin-top: 30px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Verify your email</h1>
            <p>{greeting}</p>
            <p>Use the code below to finish creating your {settings.APP_NAME} account:</p>
            <div class="otp-code">{code}</div>
            <p><strong>This code expires in {expiry_minutes} minutes.</strong></p>
            <p>If you didn't request this code, you can ignore this email.</p>
            <div class="footer">
                <p>This is an automated message, please do not reply.</p>
            </div>
        </div>
    </body>
    </html>
    """


def _create_otp_email_text(code: str, name: Optional[str], expiry_minutes: int) -> str:
    greeting = f"Hi {name}," if name else "Hi,"
    return f"""
{greeting}

Your {settings.APP_NAME} verification code is: {code}

This code expires in {expiry_minutes} minutes.

If you didn't request this code, you can ignore this email.
    """


# =============================================================================
# Mailer
# =============================================================================

class EmailMailer(IMailer):
    """IMailer backed by a configured EmailProvider."""

    def __init__(self, provider: EmailProvider, expiry_minutes: Optional[int] = None):
        self.provider = provider
        self.expiry_minutes = expiry_minutes or settings.OTP_EXPIRY_MINUTES

    async def send_otp_email(self, to_email: str, code: str, name: str | None = None) -> bool:
        subject = f"Your {settings.APP_NAME} verification code"
        html_body = _create_otp_email_html(code, name, self.expiry_minutes)
        text_body = _create_otp_email_text(code, name, self.expiry_minutes)
        return await self.provider.send(to_email, subject, html_body, text_body)


_mailer_instance: Optional[EmailMailer] = None


def get_mailer() -> IMailer:
    """Get the configured mailer (singleton)."""
    global _mailer_instance

    if _mailer_instance is None:
        provider = create_email_provider()
        _mailer_instance = EmailMailer(provider)
        logger.info(f"Email provider initialized: {provider.name}")

    return _mailer_instance

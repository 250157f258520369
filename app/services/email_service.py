"""
Ignyt - Email Service
Handles invite and notification email via SendGrid or SMTP
"""
import logging
import smtplib
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Optional

from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To

logger = logging.getLogger(__name__)

APP_NAME = 'Ignyt'


class EmailService:
    """Email notification service"""

    @property
    def sendgrid_key(self):
        return current_app.config.get('SENDGRID_API_KEY')

    @property
    def from_email(self):
        return current_app.config.get('FROM_EMAIL', 'noreply@example.com')

    @property
    def from_name(self):
        return current_app.config.get('FROM_NAME', APP_NAME)

    @property
    def smtp_host(self):
        return current_app.config.get('SMTP_HOST', 'smtp.gmail.com')

    @property
    def smtp_port(self):
        return int(current_app.config.get('SMTP_PORT', 587))

    @property
    def smtp_user(self):
        return current_app.config.get('SMTP_USER')

    @property
    def smtp_pass(self):
        return current_app.config.get('SMTP_PASS')

    @property
    def is_configured(self) -> bool:
        return bool(self.sendgrid_key or (self.smtp_user and self.smtp_pass))

    def send_simple(self, to: str, subject: str, body: str, html: bool = False) -> bool:
        """Send a simple email"""
        try:
            if self.sendgrid_key:
                return self._send_sendgrid(to, subject, body, html)
            elif self.smtp_user and self.smtp_pass:
                return self._send_smtp(to, subject, body, html)
            else:
                logger.warning(f"Email not configured. Would send to {to}: {subject}")
                return False
        except Exception as e:
            logger.error(f"Failed to send email: {e}")
            return False

    def _send_sendgrid(self, to: str, subject: str, body: str, html: bool) -> bool:
        """Send via SendGrid"""
        message = Mail(
            from_email=Email(self.from_email, self.from_name),
            to_emails=To(to),
            subject=subject,
            plain_text_content=body if not html else None,
            html_content=body if html else None
        )

        sg = SendGridAPIClient(self.sendgrid_key)
        response = sg.send(message)

        if response.status_code in [200, 201, 202]:
            logger.info(f"Email sent to {to}: {subject}")
            return True
        else:
            logger.error(f"SendGrid error: {response.status_code}")
            return False

    def _send_smtp(self, to: str, subject: str, body: str, html: bool) -> bool:
        """Send via SMTP"""
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = to

        if html:
            msg.attach(MIMEText(body, 'html'))
        else:
            msg.attach(MIMEText(body, 'plain'))

        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            server.starttls()
            server.login(self.smtp_user, self.smtp_pass)
            server.send_message(msg)

        logger.info(f"Email sent to {to}: {subject}")
        return True

    def send_partner_invite(self, to: str, partner_name: str, brand_name: str, invite_url: str,
                            expires_at: datetime, message: Optional[str] = None) -> bool:
        """Invite a retailer to join a brand's partner network"""
        personal = ''
        if message:
            personal = f"""
            <div style="padding: 16px; background: #f8f8f8; border-left: 3px solid #f97316; margin: 20px 0;">
                <em>{escape(message)}</em>
            </div>
            """

        html = f"""
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #111;">You're invited to {APP_NAME}</h2>

            <p>Hi {escape(partner_name)},</p>
            <p>{escape(brand_name)} has invited you to join their network on {APP_NAME} to collaborate on social media content.</p>
            {personal}

            <div style="margin-top: 30px;">
                <a href="{invite_url}"
                   style="display: inline-block; padding: 12px 24px; background: #111; color: #fff; text-decoration: none; border-radius: 6px;">
                    Accept Invitation
                </a>
            </div>

            <p style="color: #666; font-size: 13px; margin-top: 30px;">
                This invitation expires on {expires_at.strftime('%B %d, %Y')}.
            </p>
        </body>
        </html>
        """

        return self.send_simple(to, f"{brand_name} has invited you to join {APP_NAME}", html, html=True)

    def send_token_expired(self, to: str, partner_name: str, platform: str) -> bool:
        """Tell a partner one of their connected accounts needs reconnecting"""
        app_url = current_app.config.get('APP_URL', '').rstrip('/')
        html = f"""
        <html>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #dc2626;">Reconnect your {platform.title()} account</h2>
            <p>Hi {escape(partner_name)}, access to your {platform.title()} account has expired, so scheduled posts can't be published there.</p>
            <div style="margin-top: 30px;">
                <a href="{app_url}/partner-connect"
                   style="display: inline-block; padding: 12px 24px; background: #111; color: #fff; text-decoration: none; border-radius: 6px;">
                    Reconnect →
                </a>
            </div>
        </body>
        </html>
        """

        return self.send_simple(to, f"Action needed: reconnect {platform.title()}", html, html=True)


# Singleton instance
_email_service = None


def get_email_service() -> EmailService:
    """Get or create email service instance"""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service

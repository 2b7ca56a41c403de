import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from starlette.concurrency import run_in_threadpool

from . import config

logger = logging.getLogger("email_service")


class EmailService:
    def __init__(self):
        self.smtp_server = config.SMTP_SERVER
        self.smtp_port = config.SMTP_PORT
        self.smtp_username = config.SMTP_USERNAME
        self.smtp_password = config.SMTP_PASSWORD
        self.from_email = config.FROM_EMAIL

    @property
    def configured(self) -> bool:
        return bool(self.smtp_username and self.smtp_password)

    def send_email(self, to_email: str, subject: str, body: str) -> bool:
        """Send a plain-text e-mail; False when SMTP is off or the send failed"""
        if not self.configured:
            logger.warning("SMTP credentials not configured. Email not sent.")
            return False
        if not to_email:
            logger.warning(f"No recipient for '{subject}'. Email not sent.")
            return False

        msg = MIMEMultipart()
        msg['From'] = self.from_email
        msg['To'] = to_email
        msg['Subject'] = subject
        msg.attach(MIMEText(body, 'plain'))

        try:
            server = smtplib.SMTP(self.smtp_server, self.smtp_port)
            server.starttls()
            server.login(self.smtp_username, self.smtp_password)
            server.sendmail(self.from_email, to_email, msg.as_string())
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' to {to_email}: {e}")
            return False
        logger.info(f"Email '{subject}' sent successfully to {to_email}")
        return True

    def send_registration_decision(self, to_email: str, username: str, approved: bool,
                                   reason: Optional[str] = None, update: bool = False) -> bool:
        what = "profile update" if update else "registration"
        if approved:
            subject = f"Your iSagip {what} was approved"
            body = f"""
            Hello {username},

            Your {what} request has been approved by the barangay.
            You can now sign in to the iSagip app.

            Best regards,
            iSagip Barangay Team
            """
        else:
            subject = f"Your iSagip {what} was not approved"
            body = f"""
            Hello {username},

            Your {what} request was reviewed and could not be approved.

            Reason: {reason}

            You may submit a new request with the corrected details.

            Best regards,
            iSagip Barangay Team
            """
        return self.send_email(to_email, subject, body)


# Global email service instance
email_service = EmailService()


async def send_registration_decision_email(to_email: str, username: str, approved: bool,
                                           reason: Optional[str] = None, update: bool = False) -> bool:
    """Async wrapper; the SMTP exchange runs in the threadpool"""
    return await run_in_threadpool(
        email_service.send_registration_decision, to_email, username, approved, reason, update
    )

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from dietify.config import ConfigurationError, settings
from dietify.observability.logger import get_logger

log = get_logger("mailer")


class OtpMailer:
    """Delivers login codes over SMTP. The blocking send runs in the default
    executor."""

    def _get_smtp_config(self) -> dict:
        username = settings.smtp_username
        return {
            "host": settings.smtp_host,
            "port": settings.smtp_port,
            "use_starttls": settings.smtp_use_starttls,
            "username": username,
            "password": settings.smtp_password,
            "from_address": settings.smtp_from_address or username,
        }

    def build_message(self, recipient: str, code: str, is_new_user: bool, from_address: str) -> MIMEMultipart:
        greeting = (
            "Welcome to Dietify! We're excited to have you join our community."
            if is_new_user else "Welcome back to Dietify!"
        )
        minutes = max(settings.otp_ttl_seconds // 60, 1)
        msg = MIMEMultipart()
        msg["From"] = from_address
        msg["To"] = recipient
        msg["Subject"] = "Welcome to Dietify - Your Login Code" if is_new_user else "Your Dietify Login Code"
        msg.attach(MIMEText(
            f"{greeting} Use the verification code below:\n\n"
            f"    {code}\n\n"
            f"This code will expire in {minutes} minutes.",
            "plain",
        ))
        return msg

    async def send_code(self, recipient: str, code: str, is_new_user: bool = False) -> bool:
        smtp_cfg = self._get_smtp_config()
        if not smtp_cfg["username"] or not smtp_cfg["password"]:
            raise ConfigurationError("SMTP credentials not configured. Set SMTP_USERNAME and SMTP_PASSWORD.")

        msg = self.build_message(recipient, code, is_new_user, smtp_cfg["from_address"])
        try:
            await asyncio.get_running_loop().run_in_executor(None, self._send_smtp, smtp_cfg, recipient, msg)
        except (smtplib.SMTPException, OSError) as e:
            log.error("otp_email_failed", recipient=recipient, error=str(e))
            return False
        log.info("otp_email_sent", recipient=recipient, new_user=is_new_user)
        return True

    @staticmethod
    def _send_smtp(smtp_cfg: dict, recipient: str, msg: MIMEMultipart):
        with smtplib.SMTP(smtp_cfg["host"], smtp_cfg["port"], timeout=20) as server:
            if smtp_cfg["use_starttls"]:
                server.starttls()
            server.login(smtp_cfg["username"], smtp_cfg["password"])
            server.sendmail(smtp_cfg["from_address"], [recipient], msg.as_string())

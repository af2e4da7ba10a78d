import os
import logging
from typing import List
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

import aiosmtplib

logger = logging.getLogger(__name__)

class Mailer:
    """Cliente SMTP asíncrono. Un solo envío por mensaje, con todos los destinatarios."""

    def __init__(
        self,
        host: str = None,
        port: int = None,
        username: str = None,
        password: str = None,
        from_email: str = None,
        from_name: str = "TMS Team"
    ):
        self.host = host or os.getenv("SMTP_HOST", "smtp.gmail.com")
        self.port = port or int(os.getenv("SMTP_PORT", "587"))
        self.username = username if username is not None else os.getenv("SMTP_USER", "")
        self.password = password if password is not None else os.getenv("SMTP_PASSWORD", "")
        self.from_email = from_email or os.getenv("EMAIL_FROM") or self.username
        self.from_name = from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.password)

    def build_message(self, to: List[str], subject: str, body: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = ", ".join(to)
        message["Subject"] = subject
        message.attach(MIMEText(body, "plain"))
        return message

    async def send(self, to: List[str], subject: str, body: str) -> bool:
        """Devuelve True si el servidor SMTP aceptó el mensaje."""
        if not to:
            return False
        if not self.is_configured:
            logger.warning(f"📧 SMTP no configurado, se omite '{subject}' para {len(to)} destinatario(s)")
            return False

        try:
            await aiosmtplib.send(
                self.build_message(to, subject, body),
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=True
            )
            logger.info(f"📧 Correo enviado '{subject}' a {len(to)} destinatario(s)")
            return True
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"❌ Error enviando correo '{subject}': {e}")
            return False

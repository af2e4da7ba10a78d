"""
Entrega de notificaciones por correo.

Los endpoints calculan los destinatarios con la sesión abierta y programan
`notifier.send(...)` en `BackgroundTasks`: el envío ocurre después de la
respuesta, como máximo una vez, y los fallos solo se registran en el log.

Transportes (`NOTIFICATIONS_TRANSPORT`):
- `inline`: envío directo con el Mailer SMTP.
- `rabbitmq`: se publica `notification.email` en el bus y `app.worker` lo envía.
"""
import os
import logging
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from .events import publish_event
from .schemas import EmailMessage
from .services.mailer import Mailer

logger = logging.getLogger(__name__)

EMAIL_ROUTING_KEY = "notification.email"

class Notifier:
    def __init__(self, mailer: Optional[Mailer] = None, transport: str = None):
        self.mailer = mailer or Mailer()
        self.transport = (transport or os.getenv("NOTIFICATIONS_TRANSPORT", "inline")).lower()

    async def send(self, message: EmailMessage) -> bool:
        if not message.to:
            return False
        try:
            if self.transport == "rabbitmq":
                # pika es bloqueante: fuera del event loop
                return await run_in_threadpool(publish_event, EMAIL_ROUTING_KEY, message.model_dump())
            return await self.mailer.send(message.to, message.subject, message.body)
        except Exception as e:
            logger.error(f"❌ Notificación '{message.subject}' descartada: {e}")
            return False

_notifier: Optional[Notifier] = None

def get_notifier() -> Notifier:
    """Dependencia FastAPI: instancia compartida del Notifier."""
    global _notifier
    if _notifier is None:
        _notifier = Notifier()
    return _notifier

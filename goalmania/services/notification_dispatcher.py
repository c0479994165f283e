"""
Order notification emails

Every kind is rendered from ``templates/emails/<lang>/<kind>.txt`` and
``<kind>.html``. Sending never raises: failures are logged and returned
as a failed ``DeliveryResult`` so the order operation that triggered the
mail is not affected.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
import logging

from jinja2 import Environment, FileSystemLoader, select_autoescape

from goalmania.core.config import settings
from goalmania.services.email_service import MailMessage, MailTransport, SmtpMailTransport
from goalmania.utils.money import format_amount

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "emails"

LANGUAGES = ("it", "en")
FALLBACK_LANGUAGE = "it"

ORDER_STEPS = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")


class NotificationKind(str, Enum):
    ORDER_CONFIRMATION = "orderConfirmation"
    SHIPPING_NOTIFICATION = "shippingNotification"
    ORDER_STATUS_UPDATE = "orderStatusUpdate"
    INVOICE = "invoice"
    REFUND_CONFIRMATION = "refundConfirmation"


REQUIRED_PARAMS = {
    NotificationKind.ORDER_CONFIRMATION: ("order_id", "amount"),
    NotificationKind.SHIPPING_NOTIFICATION: ("order_id", "tracking_code"),
    NotificationKind.ORDER_STATUS_UPDATE: ("order_id", "status"),
    NotificationKind.INVOICE: ("order_id", "invoice_number", "items", "amount"),
    NotificationKind.REFUND_CONFIRMATION: ("order_id", "amount"),
}

SUBJECTS = {
    "it": {
        NotificationKind.ORDER_CONFIRMATION: "Conferma ordine - {store}",
        NotificationKind.SHIPPING_NOTIFICATION: "Il tuo ordine è stato spedito!",
        NotificationKind.ORDER_STATUS_UPDATE: "Aggiornamento ordine - {status} (Ordine #{order_id})",
        NotificationKind.INVOICE: "Fattura {invoice_number} - {store}",
        NotificationKind.REFUND_CONFIRMATION: "Rimborso effettuato (Ordine #{order_id})",
    },
    "en": {
        NotificationKind.ORDER_CONFIRMATION: "Order Confirmation - {store}",
        NotificationKind.SHIPPING_NOTIFICATION: "Your Order Has Been Shipped!",
        NotificationKind.ORDER_STATUS_UPDATE: "Order Status Update - {status} (Order #{order_id})",
        NotificationKind.INVOICE: "Invoice {invoice_number} - {store}",
        NotificationKind.REFUND_CONFIRMATION: "Refund Processed (Order #{order_id})",
    },
}

STATUS_LABELS = {
    "it": {
        "pending": "In attesa",
        "paid": "Pagato",
        "processing": "In lavorazione",
        "shipped": "Spedito",
        "delivered": "Consegnato",
        "cancelled": "Annullato",
    },
    "en": {
        "pending": "Pending",
        "paid": "Paid",
        "processing": "Processing",
        "shipped": "Shipped",
        "delivered": "Delivered",
        "cancelled": "Cancelled",
    },
}


@dataclass
class DeliveryResult:
    success: bool
    kind: str
    recipient: str
    error: Optional[str] = None


def resolve_language(language: Optional[str]) -> str:
    """Map a user language to a template language, falling back to Italian"""
    if language:
        language = language.lower().split("-")[0]
        if language in LANGUAGES:
            return language
    default = (settings.DEFAULT_LANGUAGE or FALLBACK_LANGUAGE).lower()
    return default if default in LANGUAGES else FALLBACK_LANGUAGE


def status_progress(status: Any, language: str) -> Dict[str, Any]:
    """Progress bar position for the order status email; paid orders sit on the first step"""
    status = str(getattr(status, "value", status)).lower()
    steps = [step.lower() for step in ORDER_STEPS]
    if status == "paid":
        index = 0
    else:
        index = steps.index(status) if status in steps else -1
    labels = STATUS_LABELS[language]
    return {
        "status_label": labels.get(status, status.capitalize()),
        "step_labels": [labels[step] for step in steps],
        "progress_index": index,
        "cancelled": status == "cancelled",
    }


def _money(value: Any) -> str:
    return f"€{format_amount(value)}"


def build_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["money"] = _money
    env.globals["store_name"] = settings.STORE_NAME
    env.globals["order_steps"] = ORDER_STEPS
    return env


class NotificationDispatcher:
    """Renders and sends the order lifecycle emails"""

    def __init__(self, transport: Optional[MailTransport] = None, env: Optional[Environment] = None):
        self.transport = transport or SmtpMailTransport()
        self.env = env or build_environment()

    def render(self, kind: NotificationKind, recipient: str, params: Dict[str, Any], language: str) -> MailMessage:
        context = dict(params, lang=language)
        if kind == NotificationKind.ORDER_STATUS_UPDATE:
            context.update(status_progress(params["status"], language))

        subject = SUBJECTS[language][kind].format(
            store=settings.STORE_NAME,
            status=context.get("status_label", ""),
            order_id=params.get("order_id", ""),
            invoice_number=params.get("invoice_number", ""),
        )
        text = self.env.get_template(f"{language}/{kind.value}.txt").render(**context)
        html = self.env.get_template(f"{language}/{kind.value}.html").render(**context)
        return MailMessage(to=recipient, subject=subject, text=text, html=html)

    async def send(
        self,
        kind: str,
        recipient: str,
        params: Dict[str, Any],
        language: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Render ``kind`` in the recipient's language and hand it to the transport

        Args:
            kind: one of NotificationKind values
            recipient: destination email address
            params: template parameters (order_id, amount, tracking_code, ...)
            language: "it" or "en"; anything else falls back to "it"
        """
        try:
            kind = NotificationKind(kind)
        except ValueError:
            logger.error(f"Unknown notification kind {kind!r} for {recipient}")
            return DeliveryResult(success=False, kind=str(kind), recipient=recipient, error="unknown notification kind")

        if not recipient:
            logger.warning(f"Skipping {kind.value}: no recipient")
            return DeliveryResult(success=False, kind=kind.value, recipient="", error="missing recipient")

        missing = [name for name in REQUIRED_PARAMS[kind] if params.get(name) is None]
        if missing:
            logger.error(f"Cannot send {kind.value} to {recipient}: missing {', '.join(missing)}")
            return DeliveryResult(
                success=False, kind=kind.value, recipient=recipient, error=f"missing params: {', '.join(missing)}"
            )

        language = resolve_language(language)
        try:
            message = self.render(kind, recipient, params, language)
        except Exception as e:
            logger.error(f"Rendering {language}/{kind.value} failed: {e}")
            return DeliveryResult(success=False, kind=kind.value, recipient=recipient, error=str(e))

        try:
            await self.transport.send(message)
        except Exception as e:
            logger.error(f"Failed to send {kind.value} to {recipient}: {e}")
            return DeliveryResult(success=False, kind=kind.value, recipient=recipient, error=str(e))

        logger.info(f"{kind.value} ({language}) sent to {recipient}")
        return DeliveryResult(success=True, kind=kind.value, recipient=recipient)


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher

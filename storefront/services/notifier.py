"""
Email notifier - keeps the shop operator and customers informed about orders

Delivery is best effort: failures are logged and counted, never raised.
"""
from email.message import EmailMessage
from html import escape
from typing import Dict, Optional
import smtplib
import logging

from storefront.models.schemas import OrderResponse

logger = logging.getLogger(__name__)


class EmailNotifier:
    """
    Send order notifications over SMTP

    Features:
    - Plain text and HTML bodies
    - Operator alert on new orders
    - Customer mails on payment confirmation and status changes
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        sender: str = "orders@storefront.local",
        admin_email: Optional[str] = None,
        timeout: float = 10.0
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.admin_email = admin_email
        self.timeout = timeout

        if not self.host:
            logger.warning("SMTP_HOST not set - email notifications disabled")
            self.enabled = False
        else:
            self.enabled = True
            logger.info(f"EmailNotifier initialized for {self.host}:{self.port}")

        # Statistics
        self.notifications_sent = 0
        self.notifications_failed = 0

    @classmethod
    def from_settings(cls, settings) -> "EmailNotifier":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.mail_from,
            admin_email=settings.admin_email,
        )

    def is_enabled(self) -> bool:
        """Check if email notifications are enabled"""
        return self.enabled

    def notify_order_created(self, order: OrderResponse) -> bool:
        """Tell the operator a new order came in"""
        if not self.admin_email:
            logger.debug("ADMIN_EMAIL not set - skipping new order notification")
            return False

        text, html = self._render(order, f"New order #{order.id} was placed.")
        return self.send(self.admin_email, f"New order #{order.id}", text, html)

    def notify_payment_confirmed(self, order: OrderResponse) -> bool:
        """Send the customer a receipt once the payment is verified"""
        if not order.customer_email:
            logger.debug(f"Order {order.id} has no customer email - skipping receipt")
            return False

        text, html = self._render(
            order,
            f"We received your payment {order.razorpay_payment_id} for order #{order.id}."
        )
        return self.send(order.customer_email, f"Payment received for order #{order.id}", text, html)

    def notify_status_changed(self, order: OrderResponse) -> bool:
        """Tell the customer where their order is"""
        if not order.customer_email:
            logger.debug(f"Order {order.id} has no customer email - skipping status mail")
            return False

        headline = f"Your order #{order.id} is now {order.fulfillment_status.value}."
        text, html = self._render(order, headline)
        return self.send(order.customer_email, f"Order #{order.id} update", text, html)

    def _render(self, order: OrderResponse, headline: str) -> tuple[str, str]:
        """Build text and HTML bodies with an itemized summary"""
        lines = [
            f"Product #{item.product_id} x {item.quantity} @ {item.price}"
            for item in order.items
        ]
        text = "\n".join(
            [headline, ""]
            + lines
            + [
                "",
                f"Total: {order.total}",
                f"Payment: {order.payment_status.value}",
                f"Status: {order.fulfillment_status.value}",
            ]
        )

        rows = "".join(
            f"<tr><td>#{item.product_id}</td><td>{item.quantity}</td><td>{escape(str(item.price))}</td></tr>"
            for item in order.items
        )
        html = (
            f"<p>{escape(headline)}</p>"
            f"<table><tr><th>Product</th><th>Qty</th><th>Price</th></tr>{rows}</table>"
            f"<p><b>Total:</b> {escape(str(order.total))}<br>"
            f"<b>Payment:</b> {order.payment_status.value}<br>"
            f"<b>Status:</b> {order.fulfillment_status.value}</p>"
        )
        return text, html

    def send(self, to: str, subject: str, text: str, html: str) -> bool:
        """Send one message; returns False instead of raising"""
        if not self.enabled:
            logger.debug("Email notifications disabled - skipping")
            return False

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)

            self.notifications_sent += 1
            logger.info(f"Email '{subject}' sent to {to}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            self.notifications_failed += 1
            logger.error(f"Failed to send email '{subject}' to {to}: {e}")
            return False

    def get_stats(self) -> Dict:
        """Get notification statistics"""
        return {
            "enabled": self.enabled,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
        }

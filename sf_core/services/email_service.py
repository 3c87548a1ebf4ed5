"""
邮件服务
- 订单状态邮件模板
- SMTP 发送（aiosmtplib），未配置 smtp_host 时只记录日志
"""
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import aiosmtplib

from sf_core.config import Settings, get_settings
from sf_core.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class StatusTemplate:
    subject: str
    headline: str
    body: List[str]
    # additional_info 存在时追加的一行
    extra: Optional[str] = None


STATUS_TEMPLATES: Dict[str, StatusTemplate] = {
    "order_placed": StatusTemplate(
        subject="Order #{order_id} Confirmation",
        headline="Thank you for your order.",
        body=["We have received your order and it is now being processed."],
    ),
    "in-transit": StatusTemplate(
        subject="Your Order #{order_id} is on the way!",
        headline="Your order is now in transit.",
        body=[
            "Your package is on its way to you! Expect delivery within 3-5 business days.",
            "You will receive another notification when your order is delivered.",
        ],
    ),
    "delivered": StatusTemplate(
        subject="Your Order #{order_id} has been delivered!",
        headline="Your order has been delivered.",
        body=[
            "Your package has been delivered to your address.",
            "If you have any issues with your order, you can request a refund within {refund_window_days} days.",
        ],
    ),
    "cancelled": StatusTemplate(
        subject="Your Order #{order_id} has been cancelled",
        headline="Your order has been cancelled.",
        body=[
            "Your order has been successfully cancelled.",
            "Any payment made for this order will be refunded to your original payment method within 5-7 business days.",
        ],
        extra="Cancellation reason: {additional_info}",
    ),
    "refund-requested": StatusTemplate(
        subject="Refund Request Received for Order #{order_id}",
        headline="Your refund request has been received.",
        body=[
            "We have received your refund request for Order #{order_id}.",
            "Our team will review your request and you will be notified when a decision has been made.",
        ],
        extra="Reason for refund: {additional_info}",
    ),
    "refund-approved": StatusTemplate(
        subject="Refund Approved for Order #{order_id}",
        headline="Your refund has been approved.",
        body=[
            "Good news! Your refund request for Order #{order_id} has been approved.",
            "The refund amount will be processed to your original payment method within 5-7 business days.",
        ],
        extra="Admin note: {additional_info}",
    ),
    "refund-denied": StatusTemplate(
        subject="Refund Request Denied for Order #{order_id}",
        headline="Your refund request has been denied.",
        body=[
            "We're sorry, but your refund request for Order #{order_id} has been denied.",
            "If you have any questions, please contact our customer support team.",
        ],
        extra="Reason: {additional_info}",
    ),
}


def render_status_email(
    status: str,
    order_id: int,
    name: Optional[str] = None,
    additional_info: Optional[str] = None,
    items: Optional[List[Dict[str, Any]]] = None,
    total_amount: Optional[str] = None,
    refund_window_days: int = 30,
) -> Dict[str, str]:
    """渲染订单状态邮件，返回 {"subject", "body"}"""
    template = STATUS_TEMPLATES.get(status)
    fields = {
        "order_id": order_id,
        "additional_info": additional_info,
        "refund_window_days": refund_window_days,
    }

    if template is None:
        subject = f"Order #{order_id} Update"
        lines = [f"Your order status has been updated to: {status}"]
    else:
        subject = template.subject.format(**fields)
        lines = [template.headline, ""] + [line.format(**fields) for line in template.body]
        if template.extra and additional_info:
            lines.append(template.extra.format(**fields))

    body = [f"Hello {name or 'Valued Customer'},", ""] + lines + ["", f"Order ID: #{order_id}", f"Status: {status}"]

    if items:
        body.append("")
        body.append("Order Items:")
        for item in items:
            line_total = float(item.get("price", 0)) * int(item.get("quantity", 0))
            body.append(f"  {item.get('product_name') or 'Product'} x{item.get('quantity')}  ${line_total:.2f}")
        if total_amount is not None:
            body.append(f"Total: ${float(total_amount):.2f}")

    body += ["", "Thank you for shopping with our store!", "This is an automated email, please do not reply to this message."]
    return {"subject": subject, "body": "\n".join(body)}


class EmailSender:
    """SMTP 发送器"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.smtp_host)

    async def send(self, to: str, subject: str, body: str) -> bool:
        """
        发送邮件

        Returns:
            True 表示已交给 SMTP 服务器；未配置 SMTP 时返回 False
        Raises:
            aiosmtplib.SMTPException: 发送失败，由 outbox 重试
        """
        if not self.enabled:
            logger.info("Email delivery disabled, skipping", to=to, subject=subject)
            return False

        message = EmailMessage()
        message["From"] = self.settings.smtp_sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        await aiosmtplib.send(
            message,
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            username=self.settings.smtp_user,
            password=self.settings.smtp_password,
            start_tls=self.settings.smtp_start_tls,
            timeout=self.settings.smtp_timeout,
        )
        logger.info("Email sent", to=to, subject=subject)
        return True

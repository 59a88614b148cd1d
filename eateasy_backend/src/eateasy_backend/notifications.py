"""
notifications.py
Transactional order emails sent through the Resend HTTP API.
Sending is always best effort: an order never fails because an email did.
"""

import asyncio
import logging
from html import escape
from typing import Awaitable

import httpx

from eateasy_backend.settings import Settings, settings as default_settings

logger = logging.getLogger("eateasy.notifications")

# Strong references so detached send tasks are not garbage collected mid-flight
background_tasks: set[asyncio.Task] = set()


class EmailDeliveryError(Exception):
    pass


class EmailNotifier:
    def __init__(self, settings: Settings = default_settings, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.timeout = timeout
        self.transport = transport

    async def send_email(self, to: str, subject: str, html: str) -> dict:
        if not self.settings.RESEND_API_KEY:
            raise EmailDeliveryError("RESEND_API_KEY is not configured")

        payload = {"from": self.settings.EMAIL_FROM, "to": to, "subject": subject, "html": html}
        logger.info("Sending email %r to %s", subject, to)
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.RESEND_API_URL, timeout=self.timeout, transport=self.transport
            ) as client:
                resp = await client.post(
                    "/emails",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.settings.RESEND_API_KEY}"},
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise EmailDeliveryError(f"Resend API error {e.response.status_code}: {e.response.text}") from e
        except httpx.RequestError as e:
            raise EmailDeliveryError(f"Could not reach Resend: {e}") from e

        return resp.json()

    async def send_order_received(self, order) -> dict:
        pickup = "as soon as possible" if order.pickup_option == "asap" else f"{order.pickup_date:%Y-%m-%d} at {order.pickup_time}"
        html = _order_email(
            heading="Order Received!",
            name=order.customer_name,
            intro=f"We have received your order for pickup {escape(pickup)}. "
                  "You will get another email as soon as the restaurant confirms it.",
            order=order,
        )
        return await self.send_email(order.customer_email, "Order Received - AI Eat Easy", html)

    async def send_order_confirmation(self, order) -> dict:
        html = _order_email(
            heading="Order Confirmed!",
            name=order.customer_name,
            intro="Your order has been confirmed. Here are your order details:",
            order=order,
            footer=f"<p><strong>Estimated Pickup Time:</strong> {escape(order.estimated_pickup_time or 'To be determined')}</p>"
                   "<p>Thank you for choosing AI Eat Easy!</p>",
        )
        return await self.send_email(order.customer_email, "Order Confirmed - AI Eat Easy", html)

    async def send_order_rejection(self, order) -> dict:
        reason = f"<p><strong>Reason:</strong> {escape(order.cancellation_reason)}</p>" if order.cancellation_reason else ""
        html = _order_email(
            heading="Order Update",
            name=order.customer_name,
            intro="We regret to inform you that your order could not be processed at this time.",
            order=order,
            footer=reason + "<p>Please contact the restaurant directly for more information.</p>"
                            "<p>We apologize for any inconvenience caused.</p>",
        )
        return await self.send_email(order.customer_email, "Order Update - AI Eat Easy", html)


def _order_email(heading: str, name: str, intro: str, order, footer: str = "") -> str:
    rows = "".join(
        f'<tr><td style="padding: 8px; border-bottom: 1px solid #eee;">{escape(str(item.get("itemName", "")))} x {item.get("quantity", 1)}</td>'
        f'<td style="padding: 8px; border-bottom: 1px solid #eee; text-align: right;">'
        f'{float(item.get("itemPrice", 0)) * int(item.get("quantity", 1)):.2f} kr</td></tr>'
        for item in order.items
    )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h2 style="color: #333;">{heading}</h2>'
        f"<p>Dear {escape(name)},</p>"
        f"<p>{intro}</p>"
        '<table style="width: 100%; border-collapse: collapse; margin: 20px 0;">'
        f"{rows}"
        '<tr><td style="padding: 8px; font-weight: bold;">Total</td>'
        f'<td style="padding: 8px; text-align: right; font-weight: bold;">{order.total:.2f} kr</td></tr>'
        "</table>"
        f"{footer}"
        "</div>"
    )


def fire_and_forget(coro: Awaitable, description: str) -> asyncio.Task:
    """Run a send in the background; failures are logged, never raised."""

    async def runner():
        try:
            await coro
        except Exception:
            logger.exception("Notification failed: %s", description)

    task = asyncio.ensure_future(runner())
    background_tasks.add(task)
    task.add_done_callback(background_tasks.discard)
    return task

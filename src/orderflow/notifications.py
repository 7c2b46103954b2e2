"""Notification dispatch boundary.

Delivery itself (push, SMS, in-app) belongs to an external sender. Order
events only ask for notifications to be sent; a failing sender is logged and
never undoes the order change that triggered it.
"""

from typing import Protocol

import structlog

from .document_store import DocumentStore
from .models import Notification, Order, OrderStatus, _generate_id, _utc_now

NOTIFICATIONS_COLLECTION = "notifications"

ORDER_UPDATE = "order_update"
DELIVERY_UPDATE = "delivery_update"

logger = structlog.get_logger(__name__)


class NotificationSender(Protocol):
    """Anything that can deliver a notification to a user."""

    def notify(self, user_id: str, notification: Notification) -> None: ...


class LogNotificationSender:
    """Writes notifications to the log only."""

    def notify(self, user_id: str, notification: Notification) -> None:
        logger.info(
            "notification",
            user_id=user_id,
            title=notification.title,
            type=notification.type,
        )


class StoredNotificationSender:
    """Stores notifications as unread records for in-app display."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def notify(self, user_id: str, notification: Notification) -> None:
        doc = {
            "user_id": user_id,
            **notification.to_dict(),
            "is_read": False,
            "created_at": _utc_now(),
        }
        self.store.insert(NOTIFICATIONS_COLLECTION, doc, _generate_id())


class RecordingNotificationSender:
    """Keeps every notification in memory."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Notification]] = []

    def notify(self, user_id: str, notification: Notification) -> None:
        self.sent.append((user_id, notification))

    def for_user(self, user_id: str) -> list[Notification]:
        return [n for uid, n in self.sent if uid == user_id]


class NotificationDispatch:
    """Best-effort fan-out over a NotificationSender."""

    def __init__(self, sender: NotificationSender | None = None):
        self.sender = sender or LogNotificationSender()

    def dispatch(self, user_id: str, notification: Notification) -> bool:
        """Send one notification; returns False (and logs) if the sender fails."""
        try:
            self.sender.notify(user_id, notification)
        except Exception:
            logger.warning(
                "notification_failed",
                user_id=user_id,
                title=notification.title,
                exc_info=True,
            )
            return False
        return True

    def dispatch_all(self, notifications: list[tuple[str, Notification]]) -> int:
        """Send each notification independently; returns how many succeeded."""
        return sum(1 for user_id, n in notifications if self.dispatch(user_id, n))

    def order_event(self, order: Order, status: OrderStatus, reason: str | None = None) -> int:
        return self.dispatch_all(order_notifications(order, status, reason))


def order_notifications(
    order: Order,
    status: OrderStatus,
    reason: str | None = None,
) -> list[tuple[str, Notification]]:
    """Build the (user_id, notification) pairs for an order status event."""
    number = order.order_number
    code = order.verification_code
    data = {"order_id": order.id, "order_number": number}

    def note(title: str, message: str, kind: str = ORDER_UPDATE) -> Notification:
        return Notification(title=title, message=message, type=kind, data=dict(data))

    status = OrderStatus(status)
    if status is OrderStatus.PENDING:
        return [
            (order.buyer_id, note(
                "Order Placed Successfully",
                f"Your order #{number} has been placed. Verification code: {code}",
            )),
            (order.seller_id, note(
                "New Order Received",
                f"New order #{number} for {order.product.title}. Code: {code}",
            )),
        ]

    if status is OrderStatus.RIDER_ASSIGNED:
        rider_name = order.rider_info.name if order.rider_info else "A rider"
        result = [
            (order.buyer_id, note(
                "Rider Assigned",
                f"{rider_name} has been assigned to your order #{number}",
                DELIVERY_UPDATE,
            )),
            (order.seller_id, note(
                "Rider Coming",
                f"Rider is coming to pick up order #{number}. Code: {code}",
                DELIVERY_UPDATE,
            )),
        ]
        if order.rider_id:
            result.append((order.rider_id, note(
                "New Delivery Assignment",
                f"You've been assigned order #{number}. Code: {code}",
                DELIVERY_UPDATE,
            )))
        return result

    if status is OrderStatus.PICKED_UP:
        return [(order.buyer_id, note(
            "Order Picked Up",
            f"Your order #{number} has been picked up and is on the way!",
            DELIVERY_UPDATE,
        ))]

    if status is OrderStatus.DELIVERED:
        return [
            (order.buyer_id, note(
                "Order Delivered",
                f"Your order #{number} has been delivered successfully!",
                DELIVERY_UPDATE,
            )),
            (order.seller_id, note(
                "Order Completed",
                f"Order #{number} has been delivered successfully",
            )),
        ]

    if status is OrderStatus.CANCELLED:
        reason = reason or "Unknown reason"
        return [
            (order.buyer_id, note(
                "Order Cancelled",
                f"Your order #{number} has been cancelled. Reason: {reason}",
            )),
            (order.seller_id, note(
                "Order Cancelled",
                f"Order #{number} has been cancelled. Reason: {reason}",
            )),
        ]

    label = status.value.replace("_", " ")
    return [(order.buyer_id, note("Order Update", f"Your order #{number} is now {label}"))]

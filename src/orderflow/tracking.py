"""Append-only order tracking history for orderflow."""

from .document_store import DocumentStore, Filter, Transaction
from .errors import InvalidFieldError
from .models import Coordinates, OrderStatus, OrderTrackingEntry, _generate_id, _utc_now

TRACKING_COLLECTION = "order_tracking"


class OrderTrackingLog:
    """Manages tracking entries: one per accepted status change, never edited."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def append(
        self,
        order_id: str,
        status: OrderStatus,
        message: str,
        actor_id: str,
        location: Coordinates | None = None,
    ) -> OrderTrackingEntry:
        """Append an entry in its own transaction."""
        with self.store.transaction() as tx:
            return self.append_in(tx, order_id, status, message, actor_id, location)

    def append_in(
        self,
        tx: Transaction,
        order_id: str,
        status: OrderStatus,
        message: str,
        actor_id: str,
        location: Coordinates | None = None,
    ) -> OrderTrackingEntry:
        """
        Append an entry inside a caller's transaction.

        The entry's sequence number is one past the order's latest entry, so
        entries written in the same instant still read back in order.

        Raises:
            InvalidFieldError: If order ID, message or actor is empty.
        """
        if not order_id:
            raise InvalidFieldError("order_id", "is required")
        if not message:
            raise InvalidFieldError("message", "is required")
        if not actor_id:
            raise InvalidFieldError("updated_by", "is required")

        existing = tx.query(TRACKING_COLLECTION, [Filter("order_id", "==", order_id)])
        sequence = max((d.get("sequence", 0) for d in existing.documents), default=0) + 1

        entry = OrderTrackingEntry(
            id=_generate_id(),
            order_id=order_id,
            status=OrderStatus(status),
            message=message,
            updated_by=actor_id,
            sequence=sequence,
            timestamp=_utc_now(),
            location=location,
        )
        tx.insert(TRACKING_COLLECTION, entry.to_dict(), entry.id)
        return entry

    def history(self, order_id: str) -> list[OrderTrackingEntry]:
        """
        List an order's tracking entries.

        Returns:
            Entries in the order they were appended.
        """
        page = self.store.query(TRACKING_COLLECTION, [Filter("order_id", "==", order_id)])
        entries = [OrderTrackingEntry.from_dict(d) for d in page.documents]
        entries.sort(key=lambda e: e.sequence)
        return entries

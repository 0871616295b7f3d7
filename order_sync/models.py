# Models - Order data types for the order sync agent
# Parses server order payloads into immutable order records

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)


# Order statuses
PENDING = 'pending'
CONFIRMED = 'confirmed'
PREPARING = 'preparing'
READY = 'ready'
OUT_FOR_DELIVERY = 'out_for_delivery'
DELIVERED = 'delivered'
COMPLETED = 'completed'
CANCELLED = 'cancelled'

ORDER_STATUSES = (
    PENDING, CONFIRMED, PREPARING, READY,
    OUT_FOR_DELIVERY, DELIVERED, COMPLETED, CANCELLED,
)

# Orders the kitchen has not finished with yet; their acknowledgement is client-owned
NEWISH_STATUSES = frozenset({PENDING, CONFIRMED, PREPARING})
TERMINAL_STATUSES = frozenset({COMPLETED, DELIVERED, CANCELLED})

# Queued action types
ACTION_ACKNOWLEDGE = 'acknowledge'
ACTION_STATUS_UPDATE = 'status_update'


_FRACTION = re.compile(r'\.(\d+)')


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def try_parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp from the server; None when missing or unparseable."""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    # Postgres trims trailing zeros from the fraction; fromisoformat wants 3 or 6 digits
    text = _FRACTION.sub(lambda m: '.' + (m.group(1) + '000000')[:6], text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable timestamp: %s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_timestamp(value: Optional[str]) -> datetime:
    """Like try_parse_timestamp, but unparseable values sort oldest."""
    return try_parse_timestamp(value) or datetime.min.replace(tzinfo=timezone.utc)


def _parse_numeric_id(raw: Dict[str, Any]) -> Optional[int]:
    """Legacy numeric reference: numeric_id, else an integer-looking id. 0 means missing."""
    for key in ('numeric_id', 'id'):
        value = raw.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value or None
        if isinstance(value, str):
            try:
                return int(value, 10) or None
            except ValueError:
                continue
    return None


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class OrderItem:
    """A single line on an order"""
    id: str
    name: str
    quantity: int = 1
    price: float = 0.0
    size: str = ''
    notes: str = ''
    modifiers: List[Dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], order_id: str = '') -> 'OrderItem':
        item_id = raw.get('id') or raw.get('dish_id') or f"{order_id}-{raw.get('name') or 'item'}"
        return cls(
            id=str(item_id),
            name=raw.get('name') or '',
            quantity=int(raw.get('quantity') or 1),
            price=_to_float(raw.get('unit_price') or raw.get('price')),
            size=raw.get('size') or raw.get('item_size') or raw.get('variant') or '',
            notes=raw.get('special_instructions') or raw.get('notes') or '',
            modifiers=list(raw.get('modifiers') or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'quantity': self.quantity,
            'price': self.price,
            'size': self.size,
            'notes': self.notes,
            'modifiers': list(self.modifiers),
        }


@dataclass(frozen=True)
class Order:
    """An order as held by the tablet. Changes produce a new instance."""
    id: str
    status: str
    created_at: str
    numeric_id: Optional[int] = None
    order_number: str = ''
    order_type: str = 'pickup'
    updated_at: Optional[str] = None
    acknowledged_at: Optional[str] = None
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    items: List[OrderItem] = field(default_factory=list)
    customer: Dict[str, Any] = field(default_factory=dict)
    notes: str = ''

    @property
    def is_newish(self) -> bool:
        return self.status in NEWISH_STATUSES

    @property
    def created(self) -> datetime:
        return parse_timestamp(self.created_at)

    def with_changes(self, **changes) -> 'Order':
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Order':
        """Map a server order payload, tolerating the field aliases the API has used."""
        order_id = str(raw.get('uuid') or raw.get('id') or '')
        created_at = raw.get('created_at') or utc_now_iso()
        return cls(
            id=order_id,
            numeric_id=_parse_numeric_id(raw),
            order_number=str(raw.get('order_number') or ''),
            status=raw.get('order_status') or raw.get('status') or PENDING,
            order_type=raw.get('order_type') or 'pickup',
            created_at=created_at,
            updated_at=raw.get('updated_at') or created_at,
            acknowledged_at=raw.get('acknowledged_at') or raw.get('acknowledgedAt'),
            subtotal=_to_float(raw.get('subtotal')),
            tax=_to_float(raw.get('tax_amount') or raw.get('tax')),
            total=_to_float(raw.get('total_amount') or raw.get('total')),
            items=[OrderItem.from_dict(i, order_id) for i in (raw.get('items') or [])],
            customer=dict(raw.get('customer') or {'name': 'Customer', 'phone': ''}),
            notes=raw.get('notes') or raw.get('special_instructions') or '',
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'numeric_id': self.numeric_id,
            'order_number': self.order_number,
            'status': self.status,
            'order_type': self.order_type,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'acknowledged_at': self.acknowledged_at,
            'subtotal': self.subtotal,
            'tax': self.tax,
            'total': self.total,
            'items': [i.to_dict() for i in self.items],
            'customer': dict(self.customer),
            'notes': self.notes,
        }


@dataclass(frozen=True)
class QueuedAction:
    """A mutation waiting to be sent to the order service"""
    id: str
    type: str
    order_id: str
    payload: Dict[str, Any]
    created_at: str
    retry_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'order_id': self.order_id,
            'payload': dict(self.payload),
            'created_at': self.created_at,
            'retry_count': self.retry_count,
        }


@dataclass(frozen=True)
class StatusUpdateFailure:
    """Alert raised to the UI when an online status update fails"""
    target_status: str
    error: str
    order_id: str

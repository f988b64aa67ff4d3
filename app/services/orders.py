"""
Order Service

Checkout, order history, the admin order console and dashboard figures.

Status workflow (admin-only, one step at a time):

    processing → confirmed | completed | cancelled | archived
    confirmed  → completed | cancelled | archived
    completed  → archived
    cancelled  → archived
    archived   (terminal)

Orders are never deleted; archiving takes the place of deletion.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.models import Order, OrderItem, OrderStatus, Product, Profile
from app.schemas import (
    AdminOrderResponse,
    DashboardResponse,
    OrderCreate,
    OrderItemResponse,
    OrderResponse,
)
from app.services.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    OrderStatus.PROCESSING: "В обработке",
    OrderStatus.CONFIRMED: "Подтвержден",
    OrderStatus.COMPLETED: "Выполнен",
    OrderStatus.CANCELLED: "Отменен",
    OrderStatus.ARCHIVED: "Архивный",
}

ALLOWED_TRANSITIONS = {
    OrderStatus.PROCESSING: {
        OrderStatus.CONFIRMED,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.ARCHIVED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.ARCHIVED,
    },
    OrderStatus.COMPLETED: {OrderStatus.ARCHIVED},
    OrderStatus.CANCELLED: {OrderStatus.ARCHIVED},
    OrderStatus.ARCHIVED: set(),
}

UNKNOWN_CUSTOMER = "Неизвестный пользователь"
MISSING_VALUE = "Нет данных"

SORT_DESC = "desc"
SORT_ASC = "asc"

RECENT_ORDERS_LIMIT = 5


def status_label(status: OrderStatus) -> str:
    return STATUS_LABELS.get(status, status.value)


def validate_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """
    Check a status change.

    Returns:
        True if the status changes, False for a no-op (same status)

    Raises:
        ConflictError: If the workflow does not allow the change
    """
    if current == target:
        return False
    if target not in ALLOWED_TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot change order status from '{current.value}' to '{target.value}'"
        )
    return True


# =============================================================================
# RESPONSE BUILDERS
# =============================================================================

def _item_responses(order: Order) -> list[OrderItemResponse]:
    return [OrderItemResponse.model_validate(item) for item in order.items]


def to_order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        status=order.status,
        status_label=status_label(order.status),
        created_at=order.created_at,
        updated_at=order.updated_at,
        item_count=order.item_count,
        items=_item_responses(order),
    )


def to_admin_response(order: Order) -> AdminOrderResponse:
    """Order with customer columns; missing profile data gets placeholder text."""
    profile: Optional[Profile] = order.profile

    customer_name = UNKNOWN_CUSTOMER
    customer_email = MISSING_VALUE
    customer_phone = None
    if profile is not None:
        customer_name = profile.full_name or profile.name or UNKNOWN_CUSTOMER
        customer_email = profile.email or MISSING_VALUE
        customer_phone = profile.phone

    return AdminOrderResponse(
        **to_order_response(order).model_dump(),
        customer_name=customer_name,
        customer_email=customer_email,
        customer_phone=customer_phone,
    )


# =============================================================================
# FILTERING & SORTING (admin console view)
# =============================================================================

def filter_orders(
    orders: Iterable[AdminOrderResponse],
    status: Optional[OrderStatus] = None,
    query: Optional[str] = None,
) -> list[AdminOrderResponse]:
    """
    Keep orders matching a status and a free-text query.

    The query matches case-insensitively against the order id, customer
    name and customer email.
    """
    needle = (query or "").strip().lower()
    matched = []
    for order in orders:
        if status is not None and order.status != status:
            continue
        if needle:
            haystack = (str(order.id), order.customer_name.lower(), order.customer_email.lower())
            if not any(needle in field for field in haystack):
                continue
        matched.append(order)
    return matched


def sort_orders(orders: Iterable[AdminOrderResponse], sort: str = SORT_DESC) -> list[AdminOrderResponse]:
    """Sort by creation date, ties broken by id."""
    if sort not in (SORT_DESC, SORT_ASC):
        raise InvalidRequestError(f"Invalid sort order '{sort}'. Options: desc, asc")
    return sorted(
        orders,
        key=lambda o: (o.created_at is not None, o.created_at or datetime.min, o.id),
        reverse=(sort == SORT_DESC),
    )


# =============================================================================
# CHECKOUT & HISTORY
# =============================================================================

async def _load_order(db: AsyncSession, order_id: int) -> Order:
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError(f"Order #{order_id} not found")
    return order


async def processing_order_for(db: AsyncSession, user_id: str) -> Optional[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.user_id == user_id, Order.status == OrderStatus.PROCESSING)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def place_order(db: AsyncSession, profile: Profile, payload: OrderCreate) -> Order:
    """
    Turn a cart into one order with one line item per product.

    Everything is validated before the first write; the header and all
    line items are committed together.

    Raises:
        InvalidRequestError: Empty cart or unknown product
        ConflictError: The user already has an order in processing
    """
    settings = get_settings()

    if not payload.items:
        raise InvalidRequestError("Cart is empty")

    if not settings.allow_multiple_processing_orders:
        pending = await processing_order_for(db, profile.id)
        if pending is not None:
            raise ConflictError(
                f"Order #{pending.id} is still being processed; "
                "wait until it is handled before placing a new one"
            )

    product_ids = [line.product_id for line in payload.items]
    result = await db.execute(select(Product).where(Product.id.in_(product_ids)))
    products = {product.id: product for product in result.scalars().all()}

    unknown = [pid for pid in product_ids if pid not in products]
    if unknown:
        raise InvalidRequestError(f"Unknown product(s): {', '.join(str(pid) for pid in unknown)}")

    order = Order(
        user_id=profile.id,
        status=OrderStatus.PROCESSING,
        processing_lock=None if settings.allow_multiple_processing_orders else True,
        items=[
            OrderItem(
                product_id=line.product_id,
                quantity=line.quantity,
                product_name=products[line.product_id].name,
                product_unit=products[line.product_id].unit,
            )
            for line in payload.items
        ],
    )

    try:
        db.add(order)
        await db.commit()
    except IntegrityError as e:
        # A concurrent checkout got its processing order in first
        await db.rollback()
        logger.warning(f"Concurrent checkout rejected for {profile.id}: {e.orig}")
        raise ConflictError("Another order is already being processed") from e
    except Exception:
        await db.rollback()
        logger.exception(f"Failed to store order for {profile.id}")
        raise

    logger.info(f"Order #{order.id} placed by {profile.id} ({len(payload.items)} item(s))")
    return await _load_order(db, order.id)


async def list_user_orders(db: AsyncSession, user_id: str) -> list[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(result.scalars().all())


async def get_order_for(db: AsyncSession, order_id: int, viewer: Profile) -> Order:
    """Order visible to its owner and to administrators only."""
    order = await _load_order(db, order_id)
    if order.user_id != viewer.id and not viewer.is_admin:
        raise PermissionDeniedError(f"Order #{order_id} belongs to another user")
    return order


# =============================================================================
# ADMIN CONSOLE
# =============================================================================

async def list_admin_orders(
    db: AsyncSession,
    status: Optional[OrderStatus] = None,
    sort: str = SORT_DESC,
    query: Optional[str] = None,
) -> list[AdminOrderResponse]:
    statement = select(Order)
    if status is not None:
        statement = statement.where(Order.status == status)
    result = await db.execute(statement)

    view = [to_admin_response(order) for order in result.scalars().all()]
    return sort_orders(filter_orders(view, status, query), sort)


async def update_status(
    db: AsyncSession,
    order_id: int,
    target: OrderStatus,
    actor: Profile,
) -> Order:
    order = await _load_order(db, order_id)
    previous = order.status

    if not validate_transition(previous, target):
        logger.debug(f"Order #{order_id} already {target.value}")
        return order

    order.status = target
    if target != OrderStatus.PROCESSING:
        order.processing_lock = None
    await db.commit()

    logger.info(f"Order #{order_id}: {previous.value} → {target.value} (by {actor.id})")
    return await _load_order(db, order_id)


async def update_item_quantities(
    db: AsyncSession,
    order_id: int,
    quantities: dict[int, int],
) -> Order:
    """
    Save edited quantities for line items of one order.

    Raises:
        InvalidRequestError: Empty change set, item of another order, quantity below 1
        ConflictError: The order is archived
    """
    if not quantities:
        raise InvalidRequestError("No quantity changes to save")

    order = await _load_order(db, order_id)
    if order.status == OrderStatus.ARCHIVED:
        raise ConflictError(f"Order #{order_id} is archived and can no longer be edited")

    items = {item.id: item for item in order.items}
    foreign = [item_id for item_id in quantities if item_id not in items]
    if foreign:
        raise InvalidRequestError(
            f"Item(s) {', '.join(str(i) for i in foreign)} do not belong to order #{order_id}"
        )

    for item_id, quantity in quantities.items():
        if quantity < 1:
            raise InvalidRequestError(f"Quantity for item {item_id} must be at least 1")
        items[item_id].quantity = quantity

    await db.commit()
    logger.info(f"Order #{order_id}: saved quantities for {len(quantities)} item(s)")
    return await _load_order(db, order_id)


async def dashboard_stats(db: AsyncSession) -> DashboardResponse:
    status_counts = await db.execute(
        select(Order.status, func.count(Order.id)).group_by(Order.status)
    )
    counts = {status: count for status, count in status_counts.all()}

    total_products = (await db.execute(select(func.count(Product.id)))).scalar() or 0
    total_users = (await db.execute(select(func.count(Profile.id)))).scalar() or 0

    recent_result = await db.execute(
        select(Order)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(RECENT_ORDERS_LIMIT)
    )

    return DashboardResponse(
        total_orders=sum(counts.values()),
        processing_orders=counts.get(OrderStatus.PROCESSING, 0),
        confirmed_orders=counts.get(OrderStatus.CONFIRMED, 0),
        completed_orders=counts.get(OrderStatus.COMPLETED, 0),
        total_products=total_products,
        total_users=total_users,
        recent_orders=[to_admin_response(o) for o in recent_result.scalars().all()],
    )

"""Order state machine and the inventory it owns.

Every inventory or usage-counter change here is a single conditional
UPDATE, so concurrent requests cannot both pass a stock check that only
one of them can satisfy. A transition either commits all of its rows or
none of them.
"""
import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from core import clock as default_clock
from core.errors import DomainError, ErrorKind, Result
from models.enums import NotificationType, OrderSource, OrderStatus, PaymentStatus
from models.order import Order
from models.order_item import OrderItem
from models.product import Product, ProductVariant
from services import notifications
from services.discount_codes import CodeSummary, apply_discount_code
from services.pricing import LinePrice, OrderTotals
from services.targeting import CartLine

logger = logging.getLogger(__name__)

Notifier = Callable[[int, Optional[int], str, str, str], None]

STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

CANCELLABLE = frozenset(status for status, targets in STATUS_TRANSITIONS.items() if OrderStatus.CANCELLED in targets)

ORDER_NUMBER_ATTEMPTS = 10


@dataclass(frozen=True)
class PricedLine:
    line: CartLine
    price: LinePrice
    discount_source: Optional[str] = None


def generate_order_number(now) -> str:
    return f"ORD-{now:%y%m%d}-{random.randint(0, 9999):04d}"


def _parse(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise DomainError(ErrorKind.VALIDATION, f"Unknown {label}: {value}") from None


class OrderLifecycleManager:
    def __init__(self, db: Session, notifier: Optional[Notifier] = None, clock=None):
        self.db = db
        self.notifier = notifier or notifications.notify
        self.clock = clock or default_clock

    # -- queries -----------------------------------------------------------

    def get_order(self, shop_id: int, order_id: int) -> Result:
        order = self._find(shop_id, order_id)
        if not order:
            return Result.failure(ErrorKind.NOT_FOUND, "Order not found")
        return Result.success(order)

    def list_orders(self, shop_id: int, status: Optional[str] = None) -> List[Order]:
        query = self.db.query(Order).filter(Order.shop_id == shop_id)
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    # -- transitions -------------------------------------------------------

    def create_order(
        self,
        shop_id: int,
        customer_id: Optional[int],
        lines: List[PricedLine],
        totals: OrderTotals,
        order_source: OrderSource | str = OrderSource.ONLINE,
        discount_code: Optional[CodeSummary] = None,
        processed_by: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Result:
        """Store the order snapshot, debit stock and consume the code, all or nothing."""
        if not lines:
            return Result.failure(ErrorKind.VALIDATION, "Order must contain items")

        try:
            order = Order(
                shop_id=shop_id,
                user_id=customer_id,
                processed_by_user_id=processed_by,
                order_source=OrderSource(order_source).value,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                subtotal=totals.subtotal,
                tax=totals.tax,
                shipping=totals.shipping,
                discount=totals.discount,
                total=totals.total,
                discount_code_id=discount_code.id if discount_code else None,
                discount_code_value=discount_code.code if discount_code else None,
                notes=notes,
            )
            self._insert_numbered(order)

            self.db.add_all([self._snapshot(order, priced) for priced in lines])
            self.db.flush()

            for priced in lines:
                self._debit(priced.line)

            # only after the order rows exist, so abandoned checkouts never consume a use
            if discount_code:
                applied = apply_discount_code(self.db, discount_code.id)
                if not applied.ok:
                    raise applied.error

            self.db.commit()
            # bulk UPDATEs bypass the identity map
            self.db.expire_all()
        except DomainError as e:
            self.db.rollback()
            logger.info("order for shop %s rejected: %s", shop_id, e.message)
            return Result.from_error(e)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(order)
        logger.info("order %s created for shop %s, total %s", order.order_number, shop_id, order.total)
        return Result.success(order)

    def cancel_order(self, shop_id: int, order_id: int) -> Result:
        """Cancel and restock. Cancelling an already cancelled order changes nothing."""
        order = self._find(shop_id, order_id)
        if not order:
            return Result.failure(ErrorKind.NOT_FOUND, "Order not found")
        if order.status == OrderStatus.CANCELLED.value:
            return Result.success(order)
        if OrderStatus(order.status) not in CANCELLABLE:
            return Result.failure(ErrorKind.ILLEGAL_TRANSITION, f"Cannot cancel an order that is {order.status}")

        try:
            stmt = (
                update(Order)
                .where(Order.id == order.id, Order.status.in_([s.value for s in CANCELLABLE]))
                .values(
                    status=OrderStatus.CANCELLED.value,
                    payment_status=PaymentStatus.FAILED.value,
                    updated_at=self.clock.now(),
                )
                .execution_options(synchronize_session=False)
            )
            if self.db.execute(stmt).rowcount != 1:
                # lost a race with another transition
                self.db.rollback()
                self.db.refresh(order)
                if order.status == OrderStatus.CANCELLED.value:
                    return Result.success(order)
                return Result.failure(ErrorKind.ILLEGAL_TRANSITION, f"Cannot cancel an order that is {order.status}")

            for item in order.items:
                self._credit(item)
            self.db.commit()
            self.db.expire_all()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(order)
        logger.info("order %s cancelled, stock restored for %s lines", order.order_number, len(order.items))
        self._notify(
            order,
            f"Order {order.order_number} Cancelled",
            "Your order has been cancelled.",
            NotificationType.ORDER_CANCELLED,
        )
        return Result.success(order)

    def update_status(self, shop_id: int, order_id: int, new_status: OrderStatus | str) -> Result:
        try:
            target = _parse(OrderStatus, new_status, "order status")
        except DomainError as e:
            return Result.from_error(e)

        order = self._find(shop_id, order_id)
        if not order:
            return Result.failure(ErrorKind.NOT_FOUND, "Order not found")
        current = OrderStatus(order.status)
        if current == target:
            return Result.success(order)
        if target == OrderStatus.CANCELLED:
            return self.cancel_order(shop_id, order_id)
        if target not in STATUS_TRANSITIONS[current]:
            return Result.failure(
                ErrorKind.ILLEGAL_TRANSITION,
                f"Cannot change order status from {current.value} to {target.value}",
            )

        if not self._transition(order, Order.status, current.value, target.value):
            return Result.failure(ErrorKind.ILLEGAL_TRANSITION, "Order status was changed by another request")

        logger.info("order %s moved %s -> %s", order.order_number, current.value, target.value)
        self._notify(
            order,
            f"Order {order.order_number} Updated",
            f"Your order status has been updated to {target.value}",
            NotificationType.ORDER_UPDATE,
        )
        return Result.success(order)

    def update_payment_status(self, shop_id: int, order_id: int, new_status: PaymentStatus | str) -> Result:
        try:
            target = _parse(PaymentStatus, new_status, "payment status")
        except DomainError as e:
            return Result.from_error(e)

        order = self._find(shop_id, order_id)
        if not order:
            return Result.failure(ErrorKind.NOT_FOUND, "Order not found")
        current = PaymentStatus(order.payment_status)
        if current == target:
            return Result.success(order)
        if target not in PAYMENT_TRANSITIONS[current]:
            return Result.failure(
                ErrorKind.ILLEGAL_TRANSITION,
                f"Cannot change payment status from {current.value} to {target.value}",
            )

        if not self._transition(order, Order.payment_status, current.value, target.value):
            return Result.failure(ErrorKind.ILLEGAL_TRANSITION, "Payment status was changed by another request")
        logger.info("order %s payment %s -> %s", order.order_number, current.value, target.value)
        return Result.success(order)

    # -- helpers -----------------------------------------------------------

    def _find(self, shop_id: int, order_id: int) -> Optional[Order]:
        return (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.shop_id == shop_id, Order.id == order_id)
            .one_or_none()
        )

    def _transition(self, order: Order, column, current: str, target: str) -> bool:
        try:
            stmt = (
                update(Order)
                .where(Order.id == order.id, column == current)
                .values({column.key: target, "updated_at": self.clock.now()})
                .execution_options(synchronize_session=False)
            )
            changed = self.db.execute(stmt).rowcount == 1
            if changed:
                self.db.commit()
            else:
                self.db.rollback()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return changed

    def _insert_numbered(self, order: Order) -> None:
        """Flush ``order`` under a fresh order number, drawing again on a collision."""
        now = self.clock.now()
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            order.order_number = generate_order_number(now)
            self.db.add(order)
            try:
                self.db.flush()
                return
            except IntegrityError as e:
                if "order_number" not in str(e.orig):
                    raise
                # the order row is the first write of the transaction
                self.db.rollback()
                logger.warning("order number %s already taken, drawing another", order.order_number)
        raise DomainError(ErrorKind.VALIDATION, "Could not allocate an order number, please retry")

    @staticmethod
    def _snapshot(order: Order, priced: PricedLine) -> OrderItem:
        line, price = priced.line, priced.price
        return OrderItem(
            order_id=order.id,
            product_id=line.product_id,
            variant_id=line.variant_id,
            variant_scoped=line.variant_id is not None,
            product_name=line.name,
            product_sku=line.sku,
            product_barcode=line.barcode,
            product_options=dict(line.options) if line.options else None,
            quantity=line.quantity,
            original_price=price.original_unit_price,
            unit_price=price.unit_price,
            discount_percentage=price.discount_percentage,
            discount_amount=price.discount_amount,
            discount_source=priced.discount_source,
            tax_rate=price.tax_rate,
            tax_amount=price.tax_amount,
            total=price.line_total,
        )

    def _debit(self, line: CartLine) -> None:
        if line.variant_id is not None:
            stmt = (
                update(ProductVariant)
                .where(ProductVariant.id == line.variant_id, ProductVariant.inventory >= line.quantity)
                .values(inventory=ProductVariant.inventory - line.quantity)
            )
        else:
            stmt = (
                update(Product)
                .where(
                    Product.id == line.product_id,
                    Product.deleted_at.is_(None),
                    Product.inventory >= line.quantity,
                )
                .values(inventory=Product.inventory - line.quantity)
            )
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            logger.info("insufficient stock for %s (requested %s)", line.name, line.quantity)
            raise DomainError(ErrorKind.INSUFFICIENT_STOCK, f"Insufficient inventory for {line.name}")

    def _credit(self, item: OrderItem) -> None:
        # deleted catalog rows are skipped: the line survives, the stock does not
        live_products = select(Product.id).where(Product.deleted_at.is_(None))
        if item.variant_scoped:
            if item.variant_id is None:
                logger.debug("skipped restock of deleted variant for order item %s", item.id)
                return
            stmt = (
                update(ProductVariant)
                .where(ProductVariant.id == item.variant_id, ProductVariant.product_id.in_(live_products))
                .values(inventory=ProductVariant.inventory + item.quantity)
            )
        elif item.product_id is not None:
            stmt = (
                update(Product)
                .where(Product.id == item.product_id, Product.deleted_at.is_(None))
                .values(inventory=Product.inventory + item.quantity)
            )
        else:
            return
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            logger.debug("skipped restock of deleted catalog row for order item %s", item.id)

    def _notify(self, order: Order, title: str, message: str, type: NotificationType) -> None:
        try:
            self.notifier(order.shop_id, order.user_id, title, message, type.value)
        except Exception:
            logger.exception("notification for order %s failed", order.order_number)

"""Order lifecycle: creation, restaurant acceptance, driver claim and delivery.

Status only ever moves forward:

    placed -> cooking -> out_for_delivery -> delivered

Restaurants move placed -> cooking. A driver claims a cooking order, then
moves it to out_for_delivery and delivered. Every check happens before the
single field update, so a rejected request never writes.

Claims are read-check-write against the document store without a
transaction. Two drivers racing on the same order both pass the check and the
last write wins; the store ends up with exactly one driver, but the losing
caller is not told. This is a known limitation.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from .document_store import DocumentStore
from .errors import (
    IllegalTransitionError,
    InvalidOrderError,
    OrderNotFoundError,
    UnauthorizedError,
)
from .feed import OrderFeed, OrderPredicate
from .models import (
    Actor,
    Admin,
    Customer,
    Driver,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Restaurant,
    _utc_now,
)
from .pricing import PricingRules, quote

logger = logging.getLogger(__name__)

ORDERS_COLLECTION = "orders"


# --- Predicates ---


def all_orders() -> OrderPredicate:
    return lambda order: True


def by_customer(customer_id: str) -> OrderPredicate:
    return lambda order: order.customer_id == customer_id


def by_restaurant(restaurant_id: str) -> OrderPredicate:
    return lambda order: order.restaurant_id == restaurant_id


def available_jobs() -> OrderPredicate:
    """Cooking orders no driver has claimed yet."""
    return lambda order: order.status == OrderStatus.COOKING and order.driver_id is None


def assigned_to(driver_id: str) -> OrderPredicate:
    return lambda order: order.driver_id == driver_id


def any_of(*predicates: OrderPredicate) -> OrderPredicate:
    return lambda order: any(p(order) for p in predicates)


def order_filter_for(actor: Actor) -> tuple[OrderPredicate, dict]:
    """
    Return the (predicate, store filters) pair describing what an actor sees.

    Customers see their own orders, restaurants see every order (or only
    their own restaurant's when bound to one), drivers see open jobs plus
    the jobs they hold, admins see everything.

    Raises:
        TypeError: If actor is not one of the known actor types.
    """
    if isinstance(actor, Customer):
        return by_customer(actor.uid), {"customerId": actor.uid}
    if isinstance(actor, Restaurant):
        if actor.restaurant_id is None:
            return all_orders(), {}
        return by_restaurant(actor.restaurant_id), {"restaurantId": actor.restaurant_id}
    if isinstance(actor, Driver):
        return any_of(available_jobs(), assigned_to(actor.uid)), {}
    if isinstance(actor, Admin):
        return all_orders(), {}
    raise TypeError(f"Unknown actor type: {type(actor).__name__}")


class OrderLifecycleManager:
    """Owns the order state machine on top of an injected document store."""

    def __init__(
        self,
        store: DocumentStore,
        pricing_rules: PricingRules | None = None,
        clock: Optional[Callable[[], str]] = None,
    ) -> None:
        self.store = store
        self.pricing_rules = pricing_rules or PricingRules()
        self._clock = clock or _utc_now

    # -------------------- Creation --------------------

    def create_order(
        self,
        customer: Customer,
        restaurant_id: str,
        restaurant_name: str,
        items: Iterable[OrderItem],
        address: str,
        payment_method: str = PaymentMethod.CASH_ON_DELIVERY,
    ) -> Order:
        """
        Price and persist a new order in the placed state.

        Raises:
            InvalidOrderError: Empty cart, bad item, blank address, unknown
                restaurant or payment method.
        """
        items = list(items)
        if not items:
            raise InvalidOrderError("cart is empty")
        for item in items:
            if item.quantity < 1:
                raise InvalidOrderError(f"item {item.id} has quantity {item.quantity}")
            if item.unit_price < 0:
                raise InvalidOrderError(f"item {item.id} has a negative price")
        if not address or not address.strip():
            raise InvalidOrderError("delivery address is required")
        if not restaurant_id or not str(restaurant_id).strip():
            raise InvalidOrderError("restaurant is required")
        if payment_method not in PaymentMethod.ALL:
            raise InvalidOrderError(f"unknown payment method: {payment_method}")

        q = quote(items, self.pricing_rules)
        order = Order(
            id="",
            items=items,
            subtotal=q.subtotal,
            delivery_fee=q.delivery_fee,
            tax=q.tax,
            total=q.total,
            restaurant_id=str(restaurant_id),
            restaurant_name=restaurant_name,
            customer_id=customer.uid,
            customer_name=customer.name,
            delivery_address=address.strip(),
            payment_method=payment_method,
            status=OrderStatus.PLACED,
            driver_id=None,
            driver_name=None,
            created_at=self._clock(),
        )
        order.id = self.store.create(ORDERS_COLLECTION, order.to_dict())
        logger.info(
            "order %s placed by %s at %s, total %s", order.id, customer.uid, order.restaurant_id, order.total
        )
        return order

    # -------------------- Transitions --------------------

    def accept_order(self, order_id: str, restaurant: Restaurant) -> Order:
        """
        Move a placed order to cooking.

        Any other current status is a no-op: duplicate or late submissions
        return the order unchanged without writing.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            UnauthorizedError: If the caller is not a restaurant, or is bound
                to a different restaurant.
        """
        if not isinstance(restaurant, Restaurant):
            raise UnauthorizedError("only restaurants can accept orders")
        order = self.get_order(order_id)
        if restaurant.restaurant_id is not None and restaurant.restaurant_id != order.restaurant_id:
            raise UnauthorizedError(f"order {order_id} belongs to another restaurant")

        if order.status != OrderStatus.PLACED:
            logger.info("order %s: accept ignored, already %s", order_id, order.status)
            return order

        self.store.update(ORDERS_COLLECTION, order_id, {"status": OrderStatus.COOKING})
        logger.info("order %s: %s -> %s", order_id, OrderStatus.PLACED, OrderStatus.COOKING)
        order.status = OrderStatus.COOKING
        return order

    def claim_order(self, order_id: str, driver_id: str, driver_name: str = "") -> Order:
        """
        Assign a driver to a cooking, unclaimed order. Status is unchanged.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            UnauthorizedError: If no driver identity is given.
            IllegalTransitionError: If the order isn't cooking or is already claimed.
        """
        if not driver_id:
            raise UnauthorizedError("driver identity required")
        order = self.get_order(order_id)
        if order.status != OrderStatus.COOKING:
            logger.warning("order %s: claim by %s rejected, status %s", order_id, driver_id, order.status)
            raise IllegalTransitionError(order_id, order.status, "claim", "order is not cooking")
        if order.driver_id is not None:
            logger.warning("order %s: claim by %s rejected, held by %s", order_id, driver_id, order.driver_id)
            raise IllegalTransitionError(order_id, order.status, "claim", "order already claimed")

        self.store.update(
            ORDERS_COLLECTION, order_id, {"driverId": driver_id, "driverName": driver_name}
        )
        logger.info("order %s: claimed by driver %s", order_id, driver_id)
        order.driver_id = driver_id
        order.driver_name = driver_name
        return order

    def advance_delivery(self, order_id: str, driver_id: str, target_status: str) -> Order:
        """
        Move a claimed order one step along the delivery path.

        Only cooking -> out_for_delivery and out_for_delivery -> delivered
        are allowed, and only for the assigned driver.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            UnauthorizedError: If driver_id is not the assigned driver.
            IllegalTransitionError: If target_status is not the next delivery step.
        """
        order = self.get_order(order_id)
        if order.driver_id is None or order.driver_id != driver_id:
            logger.warning("order %s: advance by %s rejected, assigned to %s", order_id, driver_id, order.driver_id)
            raise UnauthorizedError(f"driver {driver_id} is not assigned to order {order_id}")

        if target_status not in (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED):
            raise IllegalTransitionError(order_id, order.status, target_status, "not a delivery step")
        if OrderStatus.successor(order.status) != target_status:
            raise IllegalTransitionError(order_id, order.status, target_status)

        self.store.update(ORDERS_COLLECTION, order_id, {"status": target_status})
        logger.info("order %s: %s -> %s", order_id, order.status, target_status)
        order.status = target_status
        return order

    # -------------------- Queries --------------------

    def get_order(self, order_id: str) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order doesn't exist.
        """
        doc = self.store.get(ORDERS_COLLECTION, order_id)
        if doc is None:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(doc)

    def list_orders(self, predicate: OrderPredicate | None = None) -> list[Order]:
        """All orders matching predicate, newest first."""
        docs = self.store.query(ORDERS_COLLECTION, order_by="createdAt", descending=True)
        orders = [Order.from_dict(d) for d in docs]
        if predicate is None:
            return orders
        return [o for o in orders if predicate(o)]

    def orders_visible_to(self, actor: Actor) -> list[Order]:
        predicate, _ = order_filter_for(actor)
        return self.list_orders(predicate)

    # -------------------- Subscriptions --------------------

    def subscribe_orders(
        self, predicate: OrderPredicate, store_filters: dict | None = None
    ) -> OrderFeed:
        """Open a live feed of the orders matching predicate."""
        return OrderFeed(self.store, ORDERS_COLLECTION, predicate, store_filters)

    def orders_for(self, actor: Actor) -> OrderFeed:
        """Open the live feed an actor's portal shows."""
        predicate, store_filters = order_filter_for(actor)
        return self.subscribe_orders(predicate, store_filters)

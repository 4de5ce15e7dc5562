"""Data models for foodrun."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Union
import uuid


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new opaque identifier."""
    return uuid.uuid4().hex


class OrderStatus:
    """
    Order statuses and their fixed forward sequence.

    Status Flow:
        placed -> cooking -> out_for_delivery -> delivered

    There is no cancellation and no way back.
    """

    PLACED = "placed"
    COOKING = "cooking"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"

    SEQUENCE = (PLACED, COOKING, OUT_FOR_DELIVERY, DELIVERED)

    @classmethod
    def is_valid(cls, status: str) -> bool:
        return status in cls.SEQUENCE

    @classmethod
    def index(cls, status: str) -> int:
        """Position of status in the sequence; ValueError if unknown."""
        return cls.SEQUENCE.index(status)

    @classmethod
    def successor(cls, status: str) -> str | None:
        """Return the next status, or None for the terminal one."""
        idx = cls.index(status)
        if idx + 1 < len(cls.SEQUENCE):
            return cls.SEQUENCE[idx + 1]
        return None

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status == cls.DELIVERED


class PaymentMethod:
    """Accepted payment methods (informational only, never settled)."""

    CASH_ON_DELIVERY = "cash_on_delivery"
    UPI_QR = "upi_qr"

    ALL = (CASH_ON_DELIVERY, UPI_QR)


class Role:
    CUSTOMER = "customer"
    RESTAURANT = "restaurant"
    DRIVER = "driver"
    ADMIN = "admin"

    PARTNER_ROLES = (RESTAURANT, DRIVER)
    ALL = (CUSTOMER, RESTAURANT, DRIVER, ADMIN)


def _money(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass
class OrderItem:
    """A single cart line."""

    id: str
    name: str
    unit_price: Decimal
    quantity: int = 1

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unitPrice": str(self.unit_price),
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            unit_price=_money(data["unitPrice"]),
            quantity=int(data.get("quantity", 1)),
        )


@dataclass
class Order:
    """A customer's order, tracked through the delivery lifecycle."""

    id: str
    items: list[OrderItem]
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    total: Decimal  # fixed at creation, never recomputed
    restaurant_id: str
    restaurant_name: str
    customer_id: str
    customer_name: str
    delivery_address: str
    payment_method: str
    status: str = OrderStatus.PLACED
    driver_id: str | None = None
    driver_name: str | None = None
    created_at: str = field(default_factory=_utc_now)

    @property
    def is_claimed(self) -> bool:
        return self.driver_id is not None

    def to_dict(self) -> dict[str, Any]:
        """Document form, without the id (the store owns it)."""
        return {
            "items": [i.to_dict() for i in self.items],
            "subtotal": str(self.subtotal),
            "deliveryFee": str(self.delivery_fee),
            "tax": str(self.tax),
            "total": str(self.total),
            "restaurantId": self.restaurant_id,
            "restaurantName": self.restaurant_name,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "deliveryAddress": self.delivery_address,
            "paymentMethod": self.payment_method,
            "status": self.status,
            "driverId": self.driver_id,
            "driverName": self.driver_name,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
            subtotal=_money(data.get("subtotal", "0")),
            delivery_fee=_money(data.get("deliveryFee", "0")),
            tax=_money(data.get("tax", "0")),
            total=_money(data["total"]),
            restaurant_id=str(data["restaurantId"]),
            restaurant_name=data.get("restaurantName", ""),
            customer_id=data["customerId"],
            customer_name=data.get("customerName", ""),
            delivery_address=data.get("deliveryAddress", ""),
            payment_method=data.get("paymentMethod", PaymentMethod.CASH_ON_DELIVERY),
            status=data.get("status", OrderStatus.PLACED),
            driver_id=data.get("driverId"),
            driver_name=data.get("driverName"),
            created_at=data.get("createdAt", ""),
        )


@dataclass
class Partner:
    """A restaurant or driver account created by an administrator."""

    id: str
    username: str
    password_hash: str
    role: str  # "restaurant" | "driver"
    name: str
    restaurant_id: str | None = None  # only for restaurant partners
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "passwordHash": self.password_hash,
            "role": self.role,
            "name": self.name,
            "restaurantId": self.restaurant_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Partner":
        return cls(
            id=data["id"],
            username=data["username"],
            password_hash=data["passwordHash"],
            role=data["role"],
            name=data.get("name", ""),
            restaurant_id=data.get("restaurantId"),
            created_at=data.get("createdAt", ""),
        )


# Actors: who is calling. One class per role, each carrying only what it needs.


@dataclass(frozen=True)
class Customer:
    uid: str
    name: str = ""


@dataclass(frozen=True)
class Restaurant:
    uid: str
    name: str = ""
    restaurant_id: str | None = None  # None = sees every restaurant's orders


@dataclass(frozen=True)
class Driver:
    uid: str
    name: str = ""


@dataclass(frozen=True)
class Admin:
    uid: str
    name: str = "Admin"


Actor = Union[Customer, Restaurant, Driver, Admin]


"""FastAPI REST API for the foodrun portals (customer, restaurant, driver, admin)."""

import json
import queue
from decimal import Decimal
from typing import Iterator, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from starlette.background import BackgroundTask

from . import __version__
from .errors import (
    AuthenticationError,
    CollaboratorUnavailableError,
    ConfigError,
    FoodrunError,
    IllegalTransitionError,
    InvalidOrderError,
    InvalidPartnerError,
    NotFoundError,
    PartnerExistsError,
    ServicesNotInitializedError,
    UnauthorizedError,
)
from .identity import Identity, customer_session
from .lifecycle import order_filter_for
from .models import Customer, Order, OrderItem, Partner, PaymentMethod, Role
from .services import Services, get_services


# --- Pydantic Schemas ---


class OrderItemSchema(BaseModel):
    id: str
    name: str
    unit_price: Decimal
    quantity: int = 1


class OrderItemOut(BaseModel):
    id: str
    name: str
    unit_price: str
    quantity: int


class OrderSchema(BaseModel):
    id: str
    items: list[OrderItemOut]
    subtotal: str
    delivery_fee: str
    tax: str
    total: str
    restaurant_id: str
    restaurant_name: str
    customer_id: str
    customer_name: str
    delivery_address: str
    payment_method: str
    status: str
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    created_at: str


class OrderCreateRequest(BaseModel):
    """Request body for placing an order."""

    restaurant_id: str
    restaurant_name: str = ""
    items: list[OrderItemSchema]
    address: str
    payment_method: str = Field(
        default=PaymentMethod.CASH_ON_DELIVERY,
        description="'cash_on_delivery' or 'upi_qr' (informational only)",
    )


class OrderListResponse(BaseModel):
    orders: list[OrderSchema]
    count: int


class AdvanceRequest(BaseModel):
    status: str = Field(..., description="'out_for_delivery' or 'delivered'")


class CustomerSessionRequest(BaseModel):
    name: str = Field(..., min_length=1)


class PartnerSessionRequest(BaseModel):
    username: str
    password: str
    portal: str = Field(..., description="'restaurant', 'driver' or 'admin'")


class SessionResponse(BaseModel):
    token: str
    uid: str
    display_name: str
    role: str
    restaurant_id: Optional[str] = None


class PartnerCreateRequest(BaseModel):
    username: str
    password: str
    role: str = Field(..., description="'restaurant' or 'driver'")
    name: str = ""
    restaurant_id: Optional[str] = None


class PartnerSchema(BaseModel):
    id: str
    username: str
    role: str
    name: str
    restaurant_id: Optional[str] = None
    created_at: str


class PartnerListResponse(BaseModel):
    partners: list[PartnerSchema]
    count: int


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- Helper Functions ---


bearer = HTTPBearer(auto_error=False)


def current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    services: Services = Depends(get_services),
) -> Identity:
    """Resolve the bearer token into the caller's identity."""
    token = credentials.credentials if credentials else ""
    return services.identity.resolve(token)


def require_role(identity: Identity, *roles: str) -> None:
    if identity.role not in roles:
        raise UnauthorizedError(f"{identity.role} cannot perform this action")


def order_to_schema(order: Order) -> OrderSchema:
    """Convert dataclass Order to Pydantic schema."""
    return OrderSchema(
        id=order.id,
        items=[
            OrderItemOut(id=i.id, name=i.name, unit_price=str(i.unit_price), quantity=i.quantity)
            for i in order.items
        ],
        subtotal=str(order.subtotal),
        delivery_fee=str(order.delivery_fee),
        tax=str(order.tax),
        total=str(order.total),
        restaurant_id=order.restaurant_id,
        restaurant_name=order.restaurant_name,
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        delivery_address=order.delivery_address,
        payment_method=order.payment_method,
        status=order.status,
        driver_id=order.driver_id,
        driver_name=order.driver_name,
        created_at=order.created_at,
    )


def partner_to_schema(partner: Partner) -> PartnerSchema:
    return PartnerSchema(
        id=partner.id,
        username=partner.username,
        role=partner.role,
        name=partner.name,
        restaurant_id=partner.restaurant_id,
        created_at=partner.created_at,
    )


def _session(services: Services, identity: Identity) -> SessionResponse:
    return SessionResponse(
        token=services.identity.issue(identity),
        uid=identity.uid,
        display_name=identity.display_name,
        role=identity.role,
        restaurant_id=identity.restaurant_id,
    )


# --- App ---


app = FastAPI(
    title="foodrun API",
    description="Order lifecycle API for the customer, restaurant, driver and admin portals",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes; the most specific class wins
ERROR_STATUS_CODES: dict[type, int] = {
    InvalidOrderError: 400,
    InvalidPartnerError: 400,
    AuthenticationError: 401,
    UnauthorizedError: 403,
    NotFoundError: 404,
    IllegalTransitionError: 409,
    PartnerExistsError: 409,
    ConfigError: 500,
    CollaboratorUnavailableError: 503,
    ServicesNotInitializedError: 503,
}


def status_code_for(exc: FoodrunError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(FoodrunError)
async def foodrun_error_handler(request: Request, exc: FoodrunError) -> JSONResponse:
    """Map FoodrunError subclasses to appropriate HTTP responses."""
    return JSONResponse(
        status_code=status_code_for(exc),
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check(services: Services = Depends(get_services)):
    """
    Health check endpoint.

    Reports whether the document store answers.
    """
    try:
        orders = services.orders.list_orders()
        return {"status": "ok", "version": __version__, "order_count": len(orders)}
    except FoodrunError as e:
        return {"status": "error", "detail": str(e)}


# --- Session Endpoints ---


@app.post("/api/sessions/customer", response_model=SessionResponse, status_code=201)
def create_customer_session(request: CustomerSessionRequest, services: Services = Depends(get_services)):
    """Start an anonymous customer session."""
    return _session(services, customer_session(request.name))


@app.post("/api/sessions/partner", response_model=SessionResponse, status_code=201)
def create_partner_session(request: PartnerSessionRequest, services: Services = Depends(get_services)):
    """Log a restaurant, driver or admin into their portal."""
    identity = services.partners.authenticate(request.username, request.password, request.portal)
    return _session(services, identity)


# --- Partner Endpoints (admin) ---


@app.post("/api/partners", response_model=PartnerSchema, status_code=201)
def create_partner(
    request: PartnerCreateRequest,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Create a restaurant or driver account."""
    require_role(identity, Role.ADMIN)
    partner = services.partners.create_partner(
        username=request.username,
        password=request.password,
        role=request.role,
        name=request.name,
        restaurant_id=request.restaurant_id,
    )
    return partner_to_schema(partner)


@app.get("/api/partners", response_model=PartnerListResponse)
def list_partners(
    role: Optional[str] = Query(default=None),
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """List partner accounts (password hashes are never returned)."""
    require_role(identity, Role.ADMIN)
    partners = services.partners.list_partners(role=role)
    return PartnerListResponse(partners=[partner_to_schema(p) for p in partners], count=len(partners))


# --- Order Endpoints ---


@app.post("/api/orders", response_model=OrderSchema, status_code=201)
def create_order(
    request: OrderCreateRequest,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Place an order as the calling customer."""
    require_role(identity, Role.CUSTOMER)
    order = services.orders.create_order(
        customer=Customer(uid=identity.uid, name=identity.display_name),
        restaurant_id=request.restaurant_id,
        restaurant_name=request.restaurant_name,
        items=[
            OrderItem(id=i.id, name=i.name, unit_price=i.unit_price, quantity=i.quantity)
            for i in request.items
        ],
        address=request.address,
        payment_method=request.payment_method,
    )
    return order_to_schema(order)


@app.get("/api/orders", response_model=OrderListResponse)
def list_orders(
    status: Optional[str] = Query(default=None),
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """List the orders the caller's portal shows, newest first."""
    orders = services.orders.orders_visible_to(identity.to_actor())
    if status:
        orders = [o for o in orders if o.status == status]
    return OrderListResponse(orders=[order_to_schema(o) for o in orders], count=len(orders))


@app.get("/api/orders/stream")
def stream_orders(
    limit: Optional[int] = Query(default=None, ge=1, description="Close after this many snapshots"),
    heartbeat: float = Query(default=15.0, gt=0),
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """
    Server-sent events: one event per snapshot of the caller's order view.

    The first event is the current state. The feed is cancelled when the
    limit is reached, and by a background task once the response ends, which
    also covers clients that disconnect before or between events.
    """
    feed = services.orders.orders_for(identity.to_actor())

    def events() -> Iterator[str]:
        sent = 0
        try:
            while limit is None or sent < limit:
                try:
                    snapshot = feed.get(timeout=heartbeat)
                except queue.Empty:
                    if feed.cancelled:
                        return
                    yield ": keep-alive\n\n"
                    continue
                payload = [order_to_schema(o).model_dump() for o in snapshot]
                yield f"event: orders\ndata: {json.dumps(payload)}\n\n"
                sent += 1
        finally:
            feed.cancel()

    return StreamingResponse(
        events(), media_type="text/event-stream", background=BackgroundTask(feed.cancel)
    )


@app.get("/api/orders/{order_id}", response_model=OrderSchema)
def get_order(
    order_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Get a single order the caller is allowed to see."""
    order = services.orders.get_order(order_id)
    predicate, _ = order_filter_for(identity.to_actor())
    if identity.role == Role.CUSTOMER and not predicate(order):
        raise UnauthorizedError(f"order {order_id} belongs to another customer")
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/accept", response_model=OrderSchema)
def accept_order(
    order_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Restaurant accepts a placed order (idempotent)."""
    require_role(identity, Role.RESTAURANT)
    order = services.orders.accept_order(order_id, identity.to_actor())
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/claim", response_model=OrderSchema)
def claim_order(
    order_id: str,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Driver claims a cooking, unclaimed order."""
    require_role(identity, Role.DRIVER)
    order = services.orders.claim_order(order_id, identity.uid, identity.display_name)
    return order_to_schema(order)


@app.post("/api/orders/{order_id}/advance", response_model=OrderSchema)
def advance_order(
    order_id: str,
    request: AdvanceRequest,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """Assigned driver moves the order to its next delivery status."""
    require_role(identity, Role.DRIVER)
    order = services.orders.advance_delivery(order_id, identity.uid, request.status)
    return order_to_schema(order)

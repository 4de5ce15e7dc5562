"""Custom exceptions for foodrun."""


class FoodrunError(Exception):
    """Base exception for all foodrun errors."""

    pass


class ConfigError(FoodrunError):
    """Raised when a configuration value cannot be parsed."""

    def __init__(self, name: str, value: str, reason: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for {name}: {value!r} ({reason})")


class InvalidOrderError(FoodrunError):
    """Raised when an order creation request is malformed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid order: {reason}")


class IllegalTransitionError(FoodrunError):
    """Raised when a requested status change is not allowed."""

    def __init__(self, order_id: str, current: str, requested: str, reason: str | None = None):
        self.order_id = order_id
        self.current = current
        self.requested = requested
        msg = f"Illegal transition for order {order_id}: {current} -> {requested}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class NotFoundError(FoodrunError):
    """Raised when a referenced entity does not exist."""

    pass


class OrderNotFoundError(NotFoundError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class PartnerNotFoundError(NotFoundError):
    """Raised when a partner username doesn't exist."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Partner not found: {username}")


class DocumentNotFoundError(NotFoundError):
    """Raised when updating a document that doesn't exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


class UnauthorizedError(FoodrunError):
    """Raised when the caller is not allowed to act on a resource."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Unauthorized: {reason}")


class AuthenticationError(UnauthorizedError):
    """Raised when the caller cannot be identified (missing, bad or expired token)."""

    pass


class InvalidCredentialsError(AuthenticationError):
    """Raised when a username/password pair doesn't match."""

    def __init__(self):
        super().__init__("invalid credentials")


class PartnerExistsError(FoodrunError):
    """Raised when creating a partner whose username is taken."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Partner already exists: {username}")


class CollaboratorUnavailableError(FoodrunError):
    """Raised when the document store or identity provider cannot be reached."""

    def __init__(self, collaborator: str, detail: str):
        self.collaborator = collaborator
        self.detail = detail
        super().__init__(f"{collaborator} unavailable: {detail}")


class ServicesNotInitializedError(FoodrunError):
    """Raised when services are requested before init_services()."""

    def __init__(self):
        super().__init__("Services not initialized. Call init_services() at startup.")


class ServicesAlreadyInitializedError(FoodrunError):
    """Raised when init_services() is called a second time."""

    def __init__(self):
        super().__init__("Services already initialized.")


class InvalidPartnerError(FoodrunError):
    """Raised when a partner account request is malformed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid partner: {reason}")

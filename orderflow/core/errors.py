"""Domain exceptions for the fulfillment core."""


class OrderflowError(Exception):
    """Base exception for all orderflow errors."""


class ValidationError(OrderflowError):
    """Raised when input is malformed or out of range."""


class NotFoundError(OrderflowError):
    """Raised when a referenced document does not exist."""


class CartItemNotFoundError(NotFoundError):
    """Raised when a cart line id is not part of the cart."""

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Cart item not found: {item_id}")


class OrderNotFoundError(NotFoundError):
    """Raised when an order id or order number is unknown."""

    def __init__(self, reference: int | str):
        self.reference = reference
        super().__init__(f"Order not found: {reference}")


class TransactionNotFoundError(NotFoundError):
    """Raised when a Casso transaction id is unknown."""

    def __init__(self, casso_id: str):
        self.casso_id = casso_id
        super().__init__(f"Transaction not found: {casso_id}")


class PermissionDeniedError(OrderflowError):
    """Raised when the acting principal lacks a required permission."""

    def __init__(self, permission: str):
        self.permission = permission
        super().__init__(f"Missing permission: {permission}")


class ConflictError(OrderflowError):
    """Raised when an operation conflicts with current state."""


class EmptyCartError(ConflictError):
    """Raised when checking out a cart without items."""

    def __init__(self):
        super().__init__("Cart is empty")


class CartConflictError(ConflictError):
    """Raised when a concurrent request modified the cart first."""

    def __init__(self):
        super().__init__("Cart was modified concurrently, retry the request")


class InvalidTransitionError(ConflictError):
    """Raised when a status change is not on the transition graph."""

    def __init__(self, current: str, requested: str, reason: str | None = None):
        self.current = current
        self.requested = requested
        msg = f"Cannot move order from '{current}' to '{requested}'"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class AlreadyMatchedError(ConflictError):
    """Raised when trying to rematch a matched bank transaction."""

    def __init__(self, casso_id: str, order_number: str | None):
        self.casso_id = casso_id
        self.order_number = order_number
        super().__init__(f"Transaction {casso_id} is already matched to order {order_number}")


class WebhookAuthError(OrderflowError):
    """Raised when a webhook carries a wrong or missing secure token."""

    def __init__(self):
        super().__init__("Invalid webhook signature")


class DependencyError(OrderflowError):
    """Raised when a collaborator service fails or times out."""


class RecipeLookupError(DependencyError):
    """Raised when recipes cannot be fetched from any configured source."""


class InventoryStoreError(DependencyError):
    """Raised when the inventory store is unreachable or answers badly."""


class CustomerLookupError(DependencyError):
    """Raised when customer info cannot be fetched."""


class MenuLookupError(DependencyError):
    """Raised when the menu service cannot be reached or answers badly."""


class MenuItemNotFoundError(NotFoundError):
    """Raised when a menu item id is unknown to the menu."""

    def __init__(self, menu_item_id: str):
        self.menu_item_id = menu_item_id
        super().__init__(f"Menu item not found: {menu_item_id}")

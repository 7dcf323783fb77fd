from __future__ import annotations


class OrderDomainError(ValueError):
    pass


class InvalidRequestError(OrderDomainError):
    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(OrderDomainError):
    pass


class ProductNotFoundError(NotFoundError):
    def __init__(self, message: str = "Product not found."):
        super().__init__(message)


class PaymentMethodNotFoundError(NotFoundError):
    def __init__(self, message: str = "Payment method not found."):
        super().__init__(message)


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class InvalidStateError(OrderDomainError):
    def __init__(self, message: str, *, status: str | None = None):
        super().__init__(message)
        self.status = status


class PersistenceError(OrderDomainError):
    pass

"""
Request-level operations, one service per resource.
"""

from .categories import CategoryService
from .customers import CustomerService
from .orders import OrderService
from .payments import PaymentIntrospectionService
from .products import ProductService
from .users import UserService

__all__ = [
    "CategoryService",
    "CustomerService",
    "OrderService",
    "PaymentIntrospectionService",
    "ProductService",
    "UserService",
]

"""
API routes for the Storefront backend.

One router per resource. Each route verifies the bearer token and the
permission scopes it needs before calling a service; record-level access is
decided inside the services.

Cascading writes (user creation, category rename) answer 201/200 when every
affected record was updated and 207 with the cascade report otherwise.
"""

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..access.principal import Principal
from ..core.reports import CascadeReport
from ..server import Storefront
from .dependencies import get_storefront, require_scopes
from .schemas import (
    CategoryCreateRequest,
    CategoryUpdateRequest,
    CustomerUpdateRequest,
    OrderUpdateRequest,
    ProductCreateRequest,
    ProductUpdateRequest,
    RefundRequest,
    UserCreateRequest,
    UserUpdateRequest,
)

users_router = APIRouter(prefix="/users", tags=["Users"])
categories_router = APIRouter(prefix="/categories", tags=["Categories"])
products_router = APIRouter(prefix="/products", tags=["Products"])
customers_router = APIRouter(prefix="/customers", tags=["Customers"])
orders_router = APIRouter(prefix="/orders", tags=["Orders"])
stripe_router = APIRouter(prefix="/stripe", tags=["Payments"])

routers = (
    users_router,
    categories_router,
    products_router,
    customers_router,
    orders_router,
    stripe_router,
)


def _cascade_response(
    key: str,
    record: dict[str, Any],
    report: CascadeReport,
    status_code: int,
) -> JSONResponse:
    """Record plus cascade report; 207 when the cascade did not complete."""
    body = {key: record, "cascade": report.to_dict()}
    return JSONResponse(
        status_code=status_code if report.complete else 207,
        content=jsonable_encoder(body),
    )


# --- Users ---


@users_router.get("")
async def list_users(
    principal: Principal = Depends(require_scopes("Users:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    """List users visible to the caller, excluding the caller."""
    return await storefront.users.list_users(principal)


@users_router.get("/{user_id}")
async def get_user(
    user_id: str,
    principal: Principal = Depends(require_scopes("Users:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.users.get_user(principal, user_id)


@users_router.post("", status_code=201)
async def create_user(
    request: UserCreateRequest,
    principal: Principal = Depends(require_scopes("Users:Create")),
    storefront: Storefront = Depends(get_storefront),
):
    """
    Create a staff user.

    The new user becomes a collaborator on every record the caller owns
    within the tables the new user's permissions cover.
    """
    user, report = await storefront.users.create_user(principal, request.model_dump())
    return _cascade_response("user", user, report, 201)


@users_router.patch("/{user_id}")
async def update_user(
    user_id: str,
    request: UserUpdateRequest,
    principal: Principal = Depends(require_scopes("Users:Update")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.users.update_user(
        principal, user_id, request.model_dump(exclude_none=True)
    )


@users_router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    principal: Principal = Depends(require_scopes("Users:Delete")),
    storefront: Storefront = Depends(get_storefront),
):
    """
    Delete a user.

    Sharing is revoked first; if revocation is incomplete the user is kept
    and the response is 207 with the report, so the call can be retried.
    """
    report = await storefront.users.delete_user(principal, user_id)
    return {"deleted": user_id, "cascade": report.to_dict()}


# --- Categories ---


@categories_router.get("")
async def list_categories(
    principal: Principal = Depends(require_scopes("Categories:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.categories.list_categories(principal)


@categories_router.get("/{category_id}")
async def get_category(
    category_id: str,
    principal: Principal = Depends(require_scopes("Categories:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.categories.get_category(principal, category_id)


@categories_router.post("", status_code=201)
async def create_category(
    request: CategoryCreateRequest,
    principal: Principal = Depends(require_scopes("Categories:Create")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.categories.create_category(principal, request.name)


@categories_router.patch("/{category_id}")
async def rename_category(
    category_id: str,
    request: CategoryUpdateRequest,
    principal: Principal = Depends(require_scopes("Categories:Update")),
    storefront: Storefront = Depends(get_storefront),
):
    """
    Rename a category.

    The new name is copied onto every product of the category.
    """
    category, report = await storefront.categories.rename_category(
        principal, category_id, request.name
    )
    return _cascade_response("category", category, report, 200)


@categories_router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    principal: Principal = Depends(require_scopes("Categories:Delete")),
    storefront: Storefront = Depends(get_storefront),
):
    """Delete an empty category. Answers 409 while it still has products."""
    return await storefront.categories.delete_category(principal, category_id)


# --- Products ---


@products_router.get("")
async def list_products(
    principal: Principal = Depends(require_scopes("Products:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.products.list_products(principal)


@products_router.get("/{product_id}")
async def get_product(
    product_id: str,
    principal: Principal = Depends(require_scopes("Products:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.products.get_product(principal, product_id)


@products_router.post("", status_code=201)
async def create_product(
    request: ProductCreateRequest,
    principal: Principal = Depends(require_scopes("Products:Create")),
    storefront: Storefront = Depends(get_storefront),
):
    """
    Create a product.

    Uploads the image, registers the product and its price with Stripe and
    increments the category's product count.
    """
    return await storefront.products.create_product(principal, request.model_dump())


@products_router.patch("/{product_id}")
async def update_product(
    product_id: str,
    request: ProductUpdateRequest,
    principal: Principal = Depends(require_scopes("Products:Update")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.products.update_product(
        principal, product_id, request.model_dump(exclude_none=True)
    )


@products_router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    principal: Principal = Depends(require_scopes("Products:Delete")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.products.delete_product(principal, product_id)


# --- Customers ---


@customers_router.get("")
async def list_customers(
    principal: Principal = Depends(require_scopes("Customers:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.customers.list_customers()


@customers_router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    principal: Principal = Depends(require_scopes("Customers:Details")),
    storefront: Storefront = Depends(get_storefront),
):
    """Customer record together with its Stripe charges."""
    return await storefront.customers.get_customer(customer_id)


@customers_router.patch("/{customer_id}")
async def update_customer(
    customer_id: str,
    request: CustomerUpdateRequest,
    principal: Principal = Depends(require_scopes("Customers:Update")),
    storefront: Storefront = Depends(get_storefront),
):
    """Activate or deactivate a customer, including their login."""
    return await storefront.customers.update_status(
        customer_id, request.status, request.cognitoUsername
    )


@customers_router.delete("/{customer_id}")
async def delete_customer(
    customer_id: str,
    principal: Principal = Depends(require_scopes("Customers:Delete")),
    storefront: Storefront = Depends(get_storefront),
):
    await storefront.customers.delete_customer(customer_id)
    return {"deleted": customer_id}


# --- Orders ---


@orders_router.get("")
async def list_orders(
    principal: Principal = Depends(require_scopes("Orders:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.orders.list_orders()


@orders_router.post("/refund")
async def refund_order(
    request: RefundRequest,
    principal: Principal = Depends(require_scopes("Orders:Refund")),
    storefront: Storefront = Depends(get_storefront),
):
    """Refund an order's charge and mark the order returned."""
    return await storefront.orders.refund_order(request.orderId)


@orders_router.get("/{order_id}")
async def get_order(
    order_id: str,
    principal: Principal = Depends(require_scopes("Orders:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.orders.get_order(order_id)


@orders_router.patch("/{order_id}")
async def update_order(
    order_id: str,
    request: OrderUpdateRequest,
    principal: Principal = Depends(require_scopes("Orders:Update")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.orders.update_status(order_id, request.status)


@orders_router.delete("/{order_id}")
async def delete_order(
    order_id: str,
    principal: Principal = Depends(require_scopes("Orders:Delete")),
    storefront: Storefront = Depends(get_storefront),
):
    await storefront.orders.delete_order(order_id)
    return {"deleted": order_id}


# --- Stripe introspection ---


@stripe_router.get("/transactions")
async def list_transactions(
    principal: Principal = Depends(require_scopes("Orders:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.payment_views.list_transactions()


@stripe_router.get("/balance")
async def get_balance(
    principal: Principal = Depends(require_scopes("Orders:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.payment_views.get_balance()


@stripe_router.get("/refunds")
async def list_refunds(
    principal: Principal = Depends(require_scopes("Orders:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.payment_views.list_refunds()


@stripe_router.get("/customers/{stripe_customer_id}/balance-transactions")
async def customer_balance_transactions(
    stripe_customer_id: str,
    principal: Principal = Depends(require_scopes("Orders:Read")),
    storefront: Storefront = Depends(get_storefront),
):
    return await storefront.payment_views.customer_balance_transactions(stripe_customer_id)

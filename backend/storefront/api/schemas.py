"""
Request models for the HTTP surface.

Field names follow the JSON the storefront frontend sends (camelCase).
"""

from typing import Literal

from pydantic import BaseModel, Field


class UserCreateRequest(BaseModel):
    """Request to create a staff user."""

    name: str = Field(..., min_length=1, description="Display name")
    role: str = Field(..., description="Role label")
    permissions: list[str] = Field(..., description="Permission scopes, e.g. Products:Read")
    email: str = Field(..., min_length=3, description="Login email, unique across users")
    phoneNumber: str = Field(..., description="Phone number")


class UserUpdateRequest(BaseModel):
    """Request to update a staff user."""

    name: str | None = None
    role: str | None = None
    permissions: list[str] | None = None
    phoneNumber: str | None = None


class CategoryCreateRequest(BaseModel):
    """Request to create a category."""

    name: str = Field(..., min_length=1, description="Category name")


class CategoryUpdateRequest(BaseModel):
    """Request to rename a category."""

    name: str = Field(..., min_length=1, description="New category name")


class ProductCreateRequest(BaseModel):
    """Request to create a product."""

    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0, description="Price in major units")
    description: str | None = None
    categoryId: str = Field(..., min_length=1)
    imageBase64: str | None = Field(None, description="Base64-encoded image")
    imageMimeType: str | None = Field(None, description="Image content type")
    stock: int | None = Field(None, ge=0)
    active: bool = True


class ProductUpdateRequest(BaseModel):
    """Request to patch a product."""

    name: str | None = None
    price: float | None = Field(None, ge=0)
    description: str | None = None
    imageBase64: str | None = None
    imageMimeType: str | None = None
    stock: int | None = Field(None, ge=0)
    active: bool | None = None
    additionalOwnerIds: list[str] | None = Field(None, description="User ids to share with")


class CustomerUpdateRequest(BaseModel):
    """Request to change a customer's status."""

    status: Literal["active", "inactive"]
    cognitoUsername: str | None = None


class OrderUpdateRequest(BaseModel):
    """Request to change an order's status."""

    status: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    """Request to refund an order."""

    orderId: str = Field(..., min_length=1)

"""Request bodies for the catalog endpoints.

Strings are trimmed before length checks. Update bodies make every field
optional; an update naming no field is rejected by the service layer with
``NO_UPDATE_FIELDS``.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from storefront.core.pagination import MAX_CURSOR

CATEGORY_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s&-]+$")

PRICE_MIN = Decimal("0.01")
PRICE_MAX = Decimal("999999.99")
STOCK_MAX = 999999


def _trimmed(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


Trimmed = BeforeValidator(_trimmed)


def _check_length(value: str | None, low: int, high: int, message: str) -> str | None:
    if value is None:
        return None
    if not low <= len(value) <= high:
        raise ValueError(message)
    return value


def _check_category_name(value: str | None) -> str | None:
    value = _check_length(value, 3, 50, "Category name must be between 3 and 50 characters")
    if value is not None and not CATEGORY_NAME_PATTERN.match(value):
        raise ValueError("Category name contains invalid characters")
    return value


def _check_price(value: Decimal | None) -> Decimal | None:
    if value is not None and not PRICE_MIN <= value <= PRICE_MAX:
        raise ValueError("Price must be a positive number between 0.01 and 999999.99")
    return value


def _check_stock(value: int | None) -> int | None:
    if value is not None and not 0 <= value <= STOCK_MAX:
        raise ValueError("Stock must be a non-negative integer not exceeding 999999")
    return value


class _Body(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def changes(self) -> dict[str, Any]:
        """Fields the client actually sent with a non-null value."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class CategoryCreate(_Body):
    name: Annotated[str, Trimmed]
    description: Annotated[str | None, Trimmed] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str | None:
        return _check_category_name(value)

    @field_validator("description")
    @classmethod
    def check_description(cls, value: str | None) -> str | None:
        return _check_length(value, 0, 500, "Description must not exceed 500 characters")


class CategoryUpdate(_Body):
    name: Annotated[str | None, Trimmed] = None
    description: Annotated[str | None, Trimmed] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str | None) -> str | None:
        return _check_category_name(value)

    @field_validator("description")
    @classmethod
    def check_description(cls, value: str | None) -> str | None:
        return _check_length(value, 0, 500, "Description must not exceed 500 characters")


class ProductCreate(_Body):
    name: Annotated[str, Trimmed]
    description: Annotated[str | None, Trimmed] = None
    price: Decimal
    category_id: int = Field(description="Id of an existing category")
    stock: int

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str) -> str | None:
        return _check_length(value, 3, 100, "Product name must be between 3 and 100 characters")

    @field_validator("description")
    @classmethod
    def check_description(cls, value: str | None) -> str | None:
        return _check_length(value, 0, 1000, "Description must not exceed 1000 characters")

    @field_validator("price")
    @classmethod
    def check_price(cls, value: Decimal) -> Decimal | None:
        return _check_price(value)

    @field_validator("category_id")
    @classmethod
    def check_category_id(cls, value: int) -> int:
        if value < 1 or value > MAX_CURSOR:
            raise ValueError("Category ID must be a positive integer")
        return value

    @field_validator("stock")
    @classmethod
    def check_stock(cls, value: int) -> int | None:
        return _check_stock(value)


class ProductUpdate(_Body):
    """Partial product update; the category of a product is fixed."""

    name: Annotated[str | None, Trimmed] = None
    description: Annotated[str | None, Trimmed] = None
    price: Decimal | None = None
    stock: int | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: str | None) -> str | None:
        return _check_length(value, 3, 100, "Product name must be between 3 and 100 characters")

    @field_validator("description")
    @classmethod
    def check_description(cls, value: str | None) -> str | None:
        return _check_length(value, 0, 1000, "Description must not exceed 1000 characters")

    @field_validator("price")
    @classmethod
    def check_price(cls, value: Decimal | None) -> Decimal | None:
        return _check_price(value)

    @field_validator("stock")
    @classmethod
    def check_stock(cls, value: int | None) -> int | None:
        return _check_stock(value)

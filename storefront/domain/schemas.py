# storefront/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field


class Address(BaseModel):
    full_name: str | None = None
    line1: str = Field(..., min_length=1)
    line2: str | None = None
    city: str = Field(..., min_length=1)
    state: str | None = None
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    phone: str | None = None


# checkouts
class CheckoutCreate(BaseModel):
    currency: str | None = Field(None, min_length=3, max_length=3)


class ItemIn(BaseModel):
    """Add a product (optionally a variant) to the checkout."""

    product_id: int = Field(..., gt=0)
    variant_id: int = Field(0, ge=0, description="0 = product without variant")
    quantity: int = Field(..., gt=0)


class ItemUpdate(BaseModel):
    quantity: int = Field(..., description="0 or less removes the line")


class CustomerDetailsIn(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = None


class ShippingMethodIn(BaseModel):
    method_id: int = Field(..., gt=0)


class PaymentProviderIn(BaseModel):
    provider: str = Field(..., min_length=1)


class DiscountCodeIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class CurrencyChangeIn(BaseModel):
    currency: str = Field(..., min_length=3, max_length=3)


class ConvertGuestIn(BaseModel):
    session_id: str = Field(..., min_length=1)
    user_id: int = Field(..., gt=0)


class CheckoutItemOut(BaseModel):
    product_id: int
    variant_id: int
    quantity: int
    unit_price: int
    subtotal: int
    product_name: str
    variant_name: str | None = None
    sku: str | None = None
    weight: Decimal

    model_config = ConfigDict(from_attributes=True)


class CheckoutOut(BaseModel):
    id: int
    user_id: int | None = None
    session_id: str | None = None
    status: str
    currency: str
    items: List[CheckoutItemOut]
    total_items: int
    shipping_address: dict | None = None
    billing_address: dict | None = None
    customer_full_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    shipping_method_id: int | None = None
    shipping_cost: int
    payment_provider: str | None = None
    discount_code: str | None = None
    discount_amount: int
    total_amount: int
    final_amount: int
    total_weight: Decimal
    expires_at: datetime
    last_activity_at: datetime | None = None
    completed_at: datetime | None = None
    converted_order_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


# orders
class OrderCreate(BaseModel):
    checkout_id: int = Field(..., gt=0)


class OrderStatusUpdate(BaseModel):
    status: str


class OrderItemOut(BaseModel):
    product_id: int
    variant_id: int
    quantity: int
    unit_price: int
    subtotal: int
    product_name: str
    variant_name: str | None = None
    sku: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    order_number: str | None = None
    user_id: int | None = None
    is_guest_order: bool
    customer_full_name: str
    customer_email: str
    currency: str
    status: str
    items: List[OrderItemOut]
    shipping_address: dict
    billing_address: dict
    shipping_method_id: int | None = None
    shipping_cost: int
    discount_code: str | None = None
    discount_amount: int
    total_amount: int
    final_amount: int
    payment_id: str | None = None
    payment_provider: str | None = None
    payment_method: str | None = None
    action_url: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# payments
class PaymentIn(BaseModel):
    order_id: int = Field(..., gt=0)
    provider: str = Field(..., min_length=1)
    method: str = Field(..., min_length=1)
    details: dict = Field(default_factory=dict)


class AmountIn(BaseModel):
    amount: int = Field(..., description="minor units")


class TransactionStatusUpdate(BaseModel):
    status: str
    metadata: dict[str, str] = Field(default_factory=dict)


class TransactionOut(BaseModel):
    id: int
    order_id: int
    transaction_id: str | None = None
    type: str
    status: str
    amount: int
    currency: str
    provider: str | None = None
    metadata: dict = Field(default_factory=dict, validation_alias=AliasChoices("meta", "metadata"))
    error_message: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerOut(BaseModel):
    order: OrderOut
    transaction: TransactionOut
    requires_action: bool = False
    replayed: bool = False

    model_config = ConfigDict(from_attributes=True)


class BalanceOut(BaseModel):
    order_id: int
    remaining_capturable: int
    remaining_refundable: int


class ProviderOut(BaseModel):
    type: str
    name: str
    enabled: bool
    methods: List[str] = []

    model_config = ConfigDict(from_attributes=True)


# currencies
class CurrencyCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=3)
    name: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1, max_length=8)
    precision: int = Field(2, ge=0, le=4)
    exchange_rate: Decimal = Field(Decimal("1"), gt=0)
    is_enabled: bool = True
    is_default: bool = False


class CurrencyUpdate(BaseModel):
    name: str | None = None
    symbol: str | None = None
    precision: int | None = Field(None, ge=0, le=4)
    exchange_rate: Decimal | None = Field(None, gt=0)


class CurrencyOut(BaseModel):
    code: str
    name: str
    symbol: str
    precision: int
    exchange_rate: Decimal
    is_enabled: bool
    is_default: bool

    model_config = ConfigDict(from_attributes=True)


class ConversionOut(BaseModel):
    amount: int
    from_currency: str
    to_currency: str
    converted: int
    formatted: str


# discounts
class DiscountCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    type: str = Field(..., pattern="^(basket|product)$")
    method: str = Field(..., pattern="^(fixed|percentage)$")
    value: Decimal = Field(..., gt=0, description="minor units when fixed, percent when percentage")
    min_order_value: int = Field(0, ge=0)
    max_discount_value: int = Field(0, ge=0)
    product_ids: List[int] = []
    category_ids: List[int] = []
    start_date: datetime | None = None
    end_date: datetime | None = None
    usage_limit: int = Field(0, ge=0)
    active: bool = True


class DiscountOut(BaseModel):
    id: int
    code: str
    type: str
    method: str
    value: Decimal
    min_order_value: int
    max_discount_value: int
    product_ids: List[int]
    category_ids: List[int]
    start_date: datetime | None = None
    end_date: datetime | None = None
    usage_limit: int
    current_usage: int
    active: bool

    model_config = ConfigDict(from_attributes=True)

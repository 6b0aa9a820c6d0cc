# import all models so SQLAlchemy registers them in Base.metadata

from storefront.data.models.currency import CurrencyModel
from storefront.data.models.discount import DiscountModel
from storefront.data.models.checkout import CheckoutModel
from storefront.data.models.checkout_item import CheckoutItemModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment_transaction import PaymentTransactionModel

__all__ = [
    "CurrencyModel",
    "DiscountModel",
    "CheckoutModel",
    "CheckoutItemModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentTransactionModel",
]

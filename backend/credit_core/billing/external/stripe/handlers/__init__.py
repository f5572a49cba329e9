from .checkout import CheckoutHandler
from .invoice import InvoiceHandler
from .subscription import SubscriptionHandler

__all__ = ['CheckoutHandler', 'InvoiceHandler', 'SubscriptionHandler']

from .shops import Shop
from .auth import User, UserShopAccess, SessionToken
from .security import SecurityEvent
from .catalog import Product, Stock, StockMovement, Supplier, Supply
from .customers import Customer
from .ledger import Sale, SaleItem, Invoice, InvoiceItem, Payment
from .sync import SyncReceipt
from .notifications import Notification

__all__ = [
    'Shop',
    'User', 'UserShopAccess', 'SessionToken', 'SecurityEvent',
    'Product', 'Stock', 'StockMovement', 'Supplier', 'Supply',
    'Customer',
    'Sale', 'SaleItem', 'Invoice', 'InvoiceItem', 'Payment',
    'SyncReceipt',
    'Notification',
]

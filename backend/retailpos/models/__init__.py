from .catalog import Category, Product
from .customers import Customer
from .sales import Sale, SaleLine, PAYMENT_METHODS, PAYMENT_STATUSES, SALE_STATUSES
from .inventory import InventoryLog, INVENTORY_LOG_TYPES
from .reports import DailyReport
from .documents import DocumentSequence

__all__ = [
    'Category', 'Product',
    'Customer',
    'Sale', 'SaleLine', 'PAYMENT_METHODS', 'PAYMENT_STATUSES', 'SALE_STATUSES',
    'InventoryLog', 'INVENTORY_LOG_TYPES',
    'DailyReport',
    'DocumentSequence',
]

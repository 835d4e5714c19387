from .inventory import Product, StockMovement
from .orders import PurchaseOrder, PurchaseOrderItem
from .sales import Sale, SaleLine
from .documents import DocumentSequence, AuditEvent

__all__ = [
    'Product', 'StockMovement',
    'PurchaseOrder', 'PurchaseOrderItem',
    'Sale', 'SaleLine',
    'DocumentSequence', 'AuditEvent',
]

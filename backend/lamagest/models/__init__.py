from .inventory import Product, Counter, Category
from .documents import (
    MovementType,
    InvoiceStatus,
    StockMovement,
    StockMovementLine,
    Invoice,
    InvoiceLine,
)
from .customers import Client, Department

__all__ = [
    'Product', 'Counter', 'Category',
    'MovementType', 'InvoiceStatus',
    'StockMovement', 'StockMovementLine',
    'Invoice', 'InvoiceLine',
    'Client', 'Department',
]

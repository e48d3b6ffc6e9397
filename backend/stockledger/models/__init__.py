from .catalog import Store, Product, StoreProduct
from .inventory import Inventory, InventoryHistory
from .audit import ActivityLog
from .sales import Sale, SaleItem
from .transfers import ProductTransfer

__all__ = [
    'Store', 'Product', 'StoreProduct',
    'Inventory', 'InventoryHistory',
    'ActivityLog',
    'Sale', 'SaleItem',
    'ProductTransfer',
]

from .catalog import Location, Register, Product
from .sales import Cart, CartLineItem, SaleTransaction, AuditEntry
from .shifts import Shift, ShiftReport
from .approvals import InventoryAdjustment, CashMovement
from .sync import SyncQueueItem

__all__ = [
    'Location', 'Register', 'Product',
    'Cart', 'CartLineItem', 'SaleTransaction', 'AuditEntry',
    'Shift', 'ShiftReport',
    'InventoryAdjustment', 'CashMovement',
    'SyncQueueItem',
]

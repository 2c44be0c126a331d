from .tenancy import Location, Room
from .inventory import InventoryType, InventoryItem, InventoryAdjustment, Lot, InventorySplit, InventoryCombination
from .cultivation import Strain, Plant, Harvest, Cure, Destruction, RoomMove
from .audit import AuditLog
from .transfers import Transfer, TransferLine
from .auth import User, SessionToken

__all__ = [
    'Location', 'Room',
    'InventoryType', 'InventoryItem', 'InventoryAdjustment', 'Lot', 'InventorySplit', 'InventoryCombination',
    'Strain', 'Plant', 'Harvest', 'Cure', 'Destruction', 'RoomMove',
    'AuditLog',
    'Transfer', 'TransferLine',
    'User', 'SessionToken',
]

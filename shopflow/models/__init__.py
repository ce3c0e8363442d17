from .tenancy import Store, StoreConfig
from .auth import User
from .customers import Customer
from .inventory import Product
from .sales import Sale, SaleItem
from .transfers import InventoryTransfer
from .loyalty import LoyaltyConfig, LoyaltyPointTransaction

__all__ = [
    'Store', 'StoreConfig',
    'User',
    'Customer',
    'Product',
    'Sale', 'SaleItem',
    'InventoryTransfer',
    'LoyaltyConfig', 'LoyaltyPointTransaction',
]

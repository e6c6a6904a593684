from .catalog import Category, Manufacturer, Product, ProductSize
from .sales import Sale, SaleItem
from .auth import User, SessionToken

__all__ = [
    'Category', 'Manufacturer', 'Product', 'ProductSize',
    'Sale', 'SaleItem',
    'User', 'SessionToken',
]

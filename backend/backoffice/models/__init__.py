from .catalog import Category, Product
from .inventory import StockLedgerEntry
from .orders import Order, OrderLine
from .returns import ReturnOrder, ReturnLine
from .expenses import Expense

__all__ = [
    'Category', 'Product',
    'StockLedgerEntry',
    'Order', 'OrderLine',
    'ReturnOrder', 'ReturnLine',
    'Expense',
]

from .base import BaseReconciler, field_errors
from .categories import CategoryReconciler
from .delete import DeleteReconciler
from .prices import PriceReconciler
from .products import ProductReconciler

__all__ = [
    'BaseReconciler',
    'field_errors',
    'CategoryReconciler',
    'DeleteReconciler',
    'PriceReconciler',
    'ProductReconciler',
]

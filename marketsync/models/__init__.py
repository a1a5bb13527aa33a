from .user import User, UserNotification
from .integration import Integration, IntegrationLog, ExportInfo
from .price import PriceList, Price, Stock, price_list_products
from .category import Category, SystemCategory, MarketplaceProductCategory
from .dictionary import Dictionary, MarketplaceAttributeValue
from .product import Product, ProductVariation, ProductVariationItem, ProductImage
from .marketplace_product import MarketplaceProduct
from .order import Order, OrderProduct, OrderHistory, Supply
from .warehouse import Warehouse
from .import_task import ImportTask, ImportProduct
from .sync_job import SyncJob
from .upload import UploadSession

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'User',
    'UserNotification',
    'Integration',
    'IntegrationLog',
    'ExportInfo',
    'PriceList',
    'Price',
    'Stock',
    'price_list_products',
    'Category',
    'SystemCategory',
    'MarketplaceProductCategory',
    'Dictionary',
    'MarketplaceAttributeValue',
    'Product',
    'ProductVariation',
    'ProductVariationItem',
    'ProductImage',
    'MarketplaceProduct',
    'Order',
    'OrderProduct',
    'OrderHistory',
    'Supply',
    'Warehouse',
    'ImportTask',
    'ImportProduct',
    'SyncJob',
    'UploadSession',
]

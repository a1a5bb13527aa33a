"""
Shared enums and constants used across the application.
"""

from enum import Enum


class Marketplace(str, Enum):
    WILDBERRIES = "wildberries"
    OZON = "ozon"
    API = "api"  # inbound API integration, no remote marketplace

    @property
    def is_remote(self) -> bool:
        return self is not Marketplace.API


class PublishStatus(str, Enum):
    """Publication flag shared by integrations, products, variations and categories"""
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"


class MarketplaceProductStatus(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    ERROR = "error"


class ItemType(str, Enum):
    """Type tag used to key prices, stocks and marketplace records by hierarchy level"""
    PRODUCT = "product"
    VARIATION = "product_variation"
    VARIATION_ITEM = "product_variation_item"


class DictionaryType(str, Enum):
    DICTIONARY = "dictionary"
    DICTIONARY_VALUE = "dictionary_value"
    ATTRIBUTE = "attribute"
    ATTRIBUTE_VALUE = "attribute_value"
    CATEGORY = "category"


class OrderStatus(str, Enum):
    NEW = "new"
    CONFIRM = "confirm"
    AWAITING_PACKAGING = "awaiting_packaging"
    AWAITING_DELIVER = "awaiting_deliver"
    DELIVERING = "delivering"
    COMPLETE = "complete"
    SOLD = "sold"
    DELIVERED = "delivered"
    CANCEL = "cancel"
    CANCELLED = "cancelled"
    CANCELED = "canceled"
    CANCELED_BY_CLIENT = "canceled_by_client"
    DECLINED_BY_CLIENT = "declined_by_client"
    DEFECT = "defect"


TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.SOLD.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCEL.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.CANCELED.value,
    OrderStatus.CANCELED_BY_CLIENT.value,
    OrderStatus.DECLINED_BY_CLIENT.value,
    OrderStatus.DEFECT.value,
})


class OrderType(str, Enum):
    FBS = "fbs"
    FBO = "fbo"
    DBS = "dbs"


class SupplyStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ImportStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class JobStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    SYNC_USER_ORDERS = "sync_user_orders"
    SYNC_ORDER_STATUSES = "sync_order_statuses"
    SYNC_SUPPLIES = "sync_supplies"
    SYNC_WAREHOUSES = "sync_warehouses"
    SYNC_CATEGORIES = "sync_categories"
    IMPORT_PRODUCTS = "import_products"
    EXPORT_PRODUCTS = "export_products"
    PRODUCTS_STATUS = "products_status"
    PRODUCT_STATUS_CHANGED = "product_status_changed"
    UPDATE_PRICES_STOCKS = "update_prices_stocks"
    EXPORT_IMAGES = "export_images"


class LogLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


# Price types accepted by the inbound price API besides marketplace keys
DEFAULT_PRICE_TYPE = "default"
PRICE_KEYS = ("base", "purchase", "presale")

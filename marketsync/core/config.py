# marketsync/core/config.py

import os
from functools import lru_cache
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Wildberries API
    WB_API_URL: str = "https://suppliers-api.wildberries.ru/"
    WB_TIMEOUT: float = 10.0
    WB_SYSTEM_TOKEN: str = ""  # used for taxonomy crawls, not tied to a user
    WB_CATEGORIES_LIMIT: int = 50000

    # Ozon API
    OZON_API_URL: str = "https://api-seller.ozon.ru"
    OZON_TIMEOUT: float = 30.0
    OZON_SYSTEM_CLIENT_ID: str = ""
    OZON_SYSTEM_API_KEY: str = ""

    # Inbound API import limits
    IMPORT_MAX_PRODUCTS: int = 10000

    # File storage
    STORAGE_DIR: str = "storage/app"
    STORAGE_URL: str = "/storage"
    TEMP_UPLOAD_DIR: str = "storage/tmp"

    # Marketplace taxonomy crawl pacing (seconds)
    CATEGORY_SYNC_ITEM_PAUSE: float = 0.1
    CATEGORY_SYNC_CHUNK_PAUSE: float = 1.0
    CATEGORY_SYNC_CHUNK_SIZE: int = 100

    # Price / stock export
    PRICE_EXPORT_CHUNK_SIZE: int = 1000
    PRICE_EXPORT_PAUSE: float = 0.5
    CARD_EXPORT_CHUNK_SIZE: int = 100

    # Orders and supplies
    ORDER_STATUS_CHUNK_SIZE: int = 1000
    NEW_ORDER_STATUS_CHUNK_SIZE: int = 500
    ORDERS_LOOKBACK_DAYS: int = 7
    SUPPLY_MAX_AGE_DAYS: int = 180

    # Delay before polling marketplace for export results
    EXPORT_STATUS_DELAY: int = 300

    # Sync job worker
    JOB_POLL_INTERVAL: float = 5.0
    JOB_MAX_ATTEMPTS: int = 3

    # Scheduler
    SYNC_SCHEDULE_ENABLED: bool = False
    USER_ORDERS_SCHEDULE: str = "*/10 * * * *"
    ORDER_STATUSES_SCHEDULE: str = "45 * * * *"
    SUPPLIES_SCHEDULE: str = "*/30 * * * *"
    WAREHOUSES_SCHEDULE: str = "0 */3 * * *"
    CATEGORIES_SCHEDULE: str = "0 22 * * *"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore"
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()

"""Application configuration."""

from os import getenv

from pydantic import BaseModel


class Settings(BaseModel):
    """Runtime settings for the fulfillment service."""

    app_name: str = "orderflow API"
    app_env: str = getenv("APP_ENV", "dev")
    log_level: str = getenv("LOG_LEVEL", "INFO")
    database_url: str = getenv("DATABASE_URL", "sqlite:///./orderflow.db")

    # Pricing
    tax_rate: float = float(getenv("TAX_RATE", "0.08"))
    default_delivery_fee: int = int(getenv("DEFAULT_DELIVERY_FEE", "30000"))
    free_delivery_threshold: int = int(getenv("FREE_DELIVERY_THRESHOLD", "500000"))
    max_item_quantity: int = int(getenv("MAX_ITEM_QUANTITY", "50"))
    cart_ttl_hours: int = int(getenv("CART_TTL_HOURS", "24"))
    default_estimated_time: int = int(getenv("DEFAULT_ESTIMATED_TIME", "30"))

    # Collaborators; empty URL means "not configured"
    customer_service_url: str = getenv("CUSTOMER_SERVICE_URL", "")
    inventory_service_url: str = getenv("INVENTORY_SERVICE_URL", "")
    menu_service_url: str = getenv("MENU_SERVICE_URL", "")
    http_timeout_seconds: float = float(getenv("HTTP_TIMEOUT_SECONDS", "3"))
    menu_cache_seconds: float = float(getenv("MENU_CACHE_SECONDS", "60"))

    # Reconciliation worker
    reconcile_poll_seconds: float = float(getenv("RECONCILE_POLL_SECONDS", "5"))
    reconcile_worker_enabled: bool = getenv("RECONCILE_WORKER_ENABLED", "1") == "1"
    reconcile_max_attempts: int = int(getenv("RECONCILE_MAX_ATTEMPTS", "8"))
    reconcile_backoff_seconds: int = int(getenv("RECONCILE_BACKOFF_SECONDS", "15"))
    reconcile_backoff_cap_seconds: int = int(getenv("RECONCILE_BACKOFF_CAP_SECONDS", "1800"))
    reconcile_batch_size: int = int(getenv("RECONCILE_BATCH_SIZE", "20"))

    # Casso / bank transfer
    casso_webhook_token: str = getenv("CASSO_WEBHOOK_TOKEN", "")
    payment_claim_attempts: int = int(getenv("PAYMENT_CLAIM_ATTEMPTS", "3"))
    bank_name: str = getenv("BANK_NAME", "")
    bank_account_number: str = getenv("BANK_ACCOUNT_NUMBER", "")
    bank_account_name: str = getenv("BANK_ACCOUNT_NAME", "")


settings: Settings = Settings()

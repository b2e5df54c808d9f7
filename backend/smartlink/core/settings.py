import os
from decimal import Decimal


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def _getenv_csv_set(name: str) -> set[str]:
    raw = _getenv(name)
    if raw is None:
        return set()
    parts = [p.strip() for p in raw.split(",")]
    return {p for p in parts if p}


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./sql_app.db") or "sqlite:///./sql_app.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")

        self.jwt_secret = _getenv("JWT_SECRET")
        self.jwt_algorithm = _getenv("JWT_ALGORITHM", "HS256") or "HS256"
        self.jwt_audience = _getenv("JWT_AUDIENCE")
        self.admin_user_ids = _getenv_csv_set("ADMIN_USER_IDS")

        self.payeer_merchant_id = _getenv("PAYEER_MERCHANT_ID")
        self.payeer_secret_key = _getenv("PAYEER_SECRET_KEY")
        self.payeer_base_url = _getenv("PAYEER_BASE_URL", "https://payeer.com/merchant/") or "https://payeer.com/merchant/"
        self.settlement_currency = (_getenv("SETTLEMENT_CURRENCY", "USD") or "USD").upper()

        self.referral_rate = Decimal(_getenv("REFERRAL_RATE", "0.01") or "0.01")
        self.ad_selection_strategy = (_getenv("AD_SELECTION_STRATEGY", "uniform") or "uniform").lower()
        self.budget_warning_threshold_pct = Decimal(_getenv("BUDGET_WARNING_THRESHOLD_PCT", "80") or "80")
        self.budget_monitor_interval_s = int(_getenv("BUDGET_MONITOR_INTERVAL_S", "300") or "300")

        self.notify_webhook_url = _getenv("NOTIFY_WEBHOOK_URL")
        self.notify_timeout_s = float(_getenv("NOTIFY_TIMEOUT_S", "5") or "5")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return ["http://localhost:5173", "http://localhost:8000"]
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()

import os


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
    parts = [p.strip().lower() for p in raw.split(",")]
    return {p for p in parts if p}


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./novaera.db") or "sqlite:///./novaera.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.log_level = (_getenv("LOG_LEVEL", "INFO") or "INFO").upper()
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")
        self.public_base_url = _getenv("PUBLIC_BASE_URL", "http://localhost:8000") or "http://localhost:8000"

        self.supabase_url = _getenv("SUPABASE_URL") or _getenv("VITE_SUPABASE_URL")
        self.supabase_anon_key = _getenv("SUPABASE_ANON_KEY") or _getenv("VITE_SUPABASE_PUBLISHABLE_KEY")
        self.supabase_service_role_key = _getenv("SUPABASE_SERVICE_ROLE_KEY")
        self.supabase_jwt_audience = _getenv("SUPABASE_JWT_AUD", "authenticated")
        self.supabase_jwt_issuer = _getenv("SUPABASE_JWT_ISSUER")

        self.misticpay_api_url = (
            _getenv("MISTICPAY_API_URL", "https://api.misticpay.com/api") or "https://api.misticpay.com/api"
        ).rstrip("/")
        self.misticpay_client_id = _getenv("MISTICPAY_CLIENT_ID")
        self.misticpay_client_secret = _getenv("MISTICPAY_CLIENT_SECRET")
        self.misticpay_webhook_secret = _getenv("MISTICPAY_WEBHOOK_SECRET")
        self.misticpay_timeout_s = float(_getenv("MISTICPAY_TIMEOUT_S", "30") or "30")

        self.pix_poll_enabled = _getenv_bool("PIX_POLL_ENABLED", default=True)
        self.pix_poll_interval_s = float(_getenv("PIX_POLL_INTERVAL_S", "5") or "5")
        self.pix_poll_timeout_s = float(_getenv("PIX_POLL_TIMEOUT_S", "1800") or "1800")

        self.store_auto_deliver = _getenv_bool("STORE_AUTO_DELIVER", default=True)
        self.delivery_access_window_hours = int(_getenv("DELIVERY_ACCESS_WINDOW_HOURS", "24") or "24")
        self.default_payer_name = _getenv("DEFAULT_PAYER_NAME", "Cliente Nova Era") or "Cliente Nova Era"

        self.admin_emails = _getenv_csv_set("ADMIN_EMAILS")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def misticpay_configured(self) -> bool:
        return bool(self.misticpay_client_id and self.misticpay_client_secret)

    def misticpay_webhook_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/api/payments/misticpay/webhook"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None or raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()

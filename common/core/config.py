from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment, StorageBackend


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    app_name: str = "universal-payments"
    debug: bool = False

    # Active payment processor tag (stripe, fake, ...)
    payment_processor: str = "fake"

    # Stripe
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_api_version: Optional[str] = None  # None = account default
    stripe_max_network_retries: int = 0  # Retries are owned by PaymentService
    stripe_webhook_tolerance_seconds: int = 300

    # Fake processor (tests/demo)
    fake_webhook_secret: str = "fake_webhook_secret"
    fake_processor_delay_seconds: float = 0.0

    # Storage
    storage_backend: StorageBackend = StorageBackend.MEMORY
    storage_key_prefix: str = "payments:"
    storage_encryption_key: Optional[str] = None  # Wraps backend when set

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @property
    def redis_connection_url(self) -> str:
        """Construct Redis URL from components."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        else:
            return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Cache TTLs in seconds
    cache_ttl_customer: int = 300
    cache_ttl_payment_method: int = 300
    cache_ttl_subscription: int = 60
    cache_ttl_charge: int = 300

    # Network retry policy for read operations
    network_max_retries: int = 3
    network_retry_delay_seconds: float = 2.0  # Doubles after each attempt

    http_timeout_seconds: float = 30.0

    # OpenTelemetry
    otel_service_name: str = "universal-payments"
    otel_service_version: str = "0.1.0"

    # Axiom (span export is skipped without a token)
    axiom_token: Optional[str] = None
    axiom_dataset: Optional[str] = None


settings = Settings()

import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings:
    @staticmethod
    def _get_int(name: str, default: int) -> int:
        return int(os.getenv(name, str(default)))

    @staticmethod
    def _get_float(name: str, default: float) -> float:
        return float(os.getenv(name, str(default)))

    @property
    def BASE_URL(self) -> str:
        return os.getenv("BASE_URL", "http://localhost:8000")

    @property
    def DATABASE_URL(self) -> str:
        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL is required")
        return database_url

    @property
    def DB_CONNECT_RETRIES(self) -> int:
        return self._get_int("DB_CONNECT_RETRIES", 10)

    @property
    def DB_CONNECT_RETRY_DELAY_SECONDS(self) -> int:
        return self._get_int("DB_CONNECT_RETRY_DELAY_SECONDS", 2)

    @property
    def JWT_SECRET(self) -> str:
        return os.getenv("JWT_SECRET", "change-me-in-production")

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def REDIS_URL(self) -> str:
        return os.getenv("REDIS_URL", "redis://localhost:6379/0")

    @property
    def PAYMENT_SERVICE_URL(self) -> str:
        return os.getenv("PAYMENT_SERVICE_URL", "http://localhost:3000")

    @property
    def PAYMENT_SERVICE_TIMEOUT_SECONDS(self) -> float:
        return self._get_float("PAYMENT_SERVICE_TIMEOUT_SECONDS", 10.0)

    @property
    def PAYMENT_CALLBACK_URL(self) -> str:
        return os.getenv("PAYMENT_CALLBACK_URL", f"{self.BASE_URL.rstrip('/')}/webhooks/payments")

    @property
    def PAYMENT_WEBHOOK_SECRET(self) -> str:
        return os.getenv("PAYMENT_WEBHOOK_SECRET", "")

    @property
    def ORDER_LOCK_TIMEOUT_SECONDS(self) -> float:
        return self._get_float("ORDER_LOCK_TIMEOUT_SECONDS", 10.0)

    @property
    def ORDER_LOCK_WAIT_SECONDS(self) -> float:
        return self._get_float("ORDER_LOCK_WAIT_SECONDS", 5.0)

    @property
    def TIMEOUT_RECONCILER_WORKERS(self) -> int:
        return self._get_int("TIMEOUT_RECONCILER_WORKERS", 2)

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")


settings = Settings()

# Validate critical settings
if settings.JWT_SECRET == "change-me-in-production":
    import warnings
    warnings.warn("JWT_SECRET is using default value. Change it in production!", UserWarning)

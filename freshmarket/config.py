# freshmarket/config.py
from typing import Optional
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(env_path), extra="ignore")

    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    # Tokens live 30 days, same as the mobile clients expect
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30
    DATABASE_URL: str = "sqlite:///./freshmarket.db"

    # Startup connection attempts before giving up
    DB_CONNECT_RETRIES: int = 5
    DB_CONNECT_BACKOFF_SECONDS: float = 1.0

    LOG_LEVEL: str = "INFO"

    # Flat delivery fee added to every order (XOF)
    DELIVERY_FEE: int = 1000

    FEDAPAY_ENVIRONMENT: str = "sandbox"
    FEDAPAY_PRIVATE_KEY: str = ""
    FEDAPAY_WEBHOOK_SECRET: Optional[str] = None
    FEDAPAY_TIMEOUT_SECONDS: float = 15.0
    FEDAPAY_CURRENCY: str = "XOF"
    FEDAPAY_COUNTRY: str = "BJ"

    FRONTEND_URL: str = "http://localhost:3000"
    # Public backend URL used as the FedaPay callback
    BACKEND_URL: str = "http://127.0.0.1:8000"

    WEBHOOK_MAX_ATTEMPTS: int = 5

    @property
    def fedapay_api_url(self) -> str:
        if self.FEDAPAY_ENVIRONMENT == "sandbox":
            return "https://sandbox-api.fedapay.com/v1/"
        return "https://api.fedapay.com/v1/"


settings = Settings()

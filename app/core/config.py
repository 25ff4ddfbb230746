"""
Application configuration and settings management
"""
from typing import List, Optional
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    # Application
    APP_NAME: str = "TripDesk"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    
    # Trip inventory / booking API
    TRANSPORT_API_URL: str = "http://localhost:8080/api"
    TRANSPORT_API_TOKEN: Optional[str] = None
    
    # Mobile money gateway
    PAYMENT_GATEWAY_URL: Optional[str] = None
    PAYMENT_GATEWAY_API_KEY: str = ""
    PAYMENT_GATEWAY_ENVIRONMENT: str = "test"  # test or production
    
    HTTP_TIMEOUT_SECONDS: float = 15.0
    
    # Payment polling
    PAYMENT_POLL_GRACE_SECONDS: float = 3.0
    PAYMENT_POLL_INTERVAL_SECONDS: float = 3.0
    PAYMENT_ESCALATION_THRESHOLD: int = 20
    PAYMENT_DEADLINE_SECONDS: float = 180.0
    
    # Confirmed and anomaly attempts are dropped from memory after this long
    ATTEMPT_RETENTION_SECONDS: float = 900.0
    
    # Booking
    STAFF_ROLES: List[str] = ["ROLE_ADMIN", "ROLE_MANAGER", "ROLE_RECEPTIONIST"]
    CURRENCY: str = "RWF"
    SUPPORT_CONTACT: str = "our support desk"
    
    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"
    }
    
    @property
    def payment_gateway_base_url(self) -> str:
        if self.PAYMENT_GATEWAY_URL:
            return self.PAYMENT_GATEWAY_URL.rstrip("/")
        if self.PAYMENT_GATEWAY_ENVIRONMENT == "production":
            return "https://api.momo-gateway.com/v1"
        return "https://sandbox.momo-gateway.com/v1"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class Settings:

    mongo_url: str
    mongo_db: str
    redis_url: Optional[str]
    jwt_secret: str
    jwt_algorithm: str
    encryption_key: Optional[str]
    api_prefix: str
    fcm_service_account_file: Optional[str]
    fcm_project_id: Optional[str]
    log_level: str


@lru_cache
def get_settings() -> Settings:
    return Settings(
        mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
        mongo_db=os.getenv("MONGO_DB", "messaging"),
        redis_url=os.getenv("REDIS_URL") or None,
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret-change-me"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        encryption_key=os.getenv("MESSAGING_ENCRYPTION_KEY") or None,
        api_prefix=os.getenv("MESSAGING_API_PREFIX", "/api/v1/messages"),
        fcm_service_account_file=os.getenv("FCM_SERVICE_ACCOUNT_FILE") or None,
        fcm_project_id=os.getenv("FCM_PROJECT_ID") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )

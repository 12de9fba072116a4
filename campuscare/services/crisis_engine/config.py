"""Crisis engine service configuration."""
import logging
import os
from dataclasses import dataclass, field

from campuscare.shared.database import ConnectionManager, DatabaseConfig
from campuscare.services.safety_service import SentimentConfig
from .mongo_store import MongoEscalationStore
from .store import EscalationStore, InMemoryEscalationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceConfig:
    """HTTP service settings.

    Without MONGO_URI the service runs on the in-memory store.
    """
    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"
    pii_hash_salt: str = "default_dev_salt_change_in_production_32chars"
    default_page_size: int = 10
    max_page_size: int = 100
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sentiment: SentimentConfig = field(default_factory=SentimentConfig)

    def __post_init__(self):
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError(
                f"default_page_size must be 1-{self.max_page_size}, got {self.default_page_size}"
            )

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        return cls(
            jwt_secret_key=os.getenv("JWT_SECRET_KEY", ""),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            pii_hash_salt=os.getenv(
                "PII_HASH_SALT", "default_dev_salt_change_in_production_32chars"
            ),
            default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "10")),
            max_page_size=int(os.getenv("MAX_PAGE_SIZE", "100")),
            database=DatabaseConfig.from_env(),
            sentiment=SentimentConfig.from_env(),
        )


def build_store(config: ServiceConfig) -> EscalationStore:
    """Pick the case store for the configured environment."""
    if config.database.is_configured:
        logger.info(
            "ESCALATION_STORE_SELECTED",
            extra={"backend": "mongodb", "database": config.database.database}
        )
        return MongoEscalationStore(ConnectionManager(config.database))

    logger.warning("ESCALATION_STORE_SELECTED", extra={"backend": "memory"})
    return InMemoryEscalationStore()

"""Configuration for the Dispute Assignment Service."""

import os


class Settings:
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", "5432"))
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "disputes")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "disputes_user")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "changeme_in_production")

    ASSIGNMENT_PORT: int = int(os.getenv("ASSIGNMENT_PORT", "8004"))
    LOG_LEVEL: str = os.getenv("ASSIGNMENT_LOG_LEVEL", "info")

    # Max concurrent active disputes per tier
    CAPACITY_COMMUNITY: int = int(os.getenv("ASSIGNMENT_CAPACITY_COMMUNITY", "5"))
    CAPACITY_SENIOR: int = int(os.getenv("ASSIGNMENT_CAPACITY_SENIOR", "10"))
    CAPACITY_ADMIN: int = int(os.getenv("ASSIGNMENT_CAPACITY_ADMIN", "15"))

    OVERLOAD_FACTOR: float = float(os.getenv("ASSIGNMENT_OVERLOAD_FACTOR", "1.5"))
    UNDERLOAD_FACTOR: float = float(os.getenv("ASSIGNMENT_UNDERLOAD_FACTOR", "0.5"))
    RECENT_ACTIVITY_HOURS: int = int(os.getenv("ASSIGNMENT_RECENT_ACTIVITY_HOURS", "24"))
    RECOMMEND_LIMIT: int = int(os.getenv("ASSIGNMENT_RECOMMEND_LIMIT", "5"))

    BALANCER_ENABLED: bool = os.getenv("ASSIGNMENT_BALANCER_ENABLED", "true").lower() == "true"
    BALANCER_INTERVAL_SECONDS: int = int(os.getenv("ASSIGNMENT_BALANCER_INTERVAL_SECONDS", "300"))

    SYSTEM_ACTOR: str = os.getenv("ASSIGNMENT_SYSTEM_ACTOR", "SYSTEM")

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()

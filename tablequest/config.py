"""Application configuration settings.

This module provides centralized configuration management for the TableQuest
practice service. All settings can be overridden via environment variables.

Environment Variables:
    DATABASE_URL: SQLAlchemy database connection URL
        Default: sqlite:///data/tablequest.db
        Example (in memory): sqlite:///:memory:

    ENVIRONMENT: Deployment environment name
        Default: development
        Options: development, staging, production
        Affects: logging format

    LOG_LEVEL: Logging verbosity level
        Default: INFO (production), DEBUG (development)
        Options: DEBUG, INFO, WARNING, ERROR, CRITICAL

    RATE_LIMIT_ENABLED: Whether request rate limiting is active
        Default: true
        Note: Must be 'true' (case-insensitive) to enable

    HOST: Interface the bundled server binds to
        Default: 127.0.0.1 (local learner only)

    PORT: Port the bundled server listens on
        Default: 8000

Usage:
    >>> from tablequest.config import settings
    >>> print(settings.DATABASE_URL)
    >>> if settings.is_production:
    ...     print("Running in production mode")
"""
import os


class Settings:
    """Application settings loaded from environment variables.

    All attributes can be overridden by setting the corresponding environment
    variable. Boolean values are case-insensitive ('true', 'True', 'TRUE' all work).
    """

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///data/tablequest.db")
    """SQLAlchemy database connection URL."""

    # Application settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    """Deployment environment: development, staging, or production."""

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "")
    """Logging level. Empty string means auto-detect based on ENVIRONMENT."""

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    """Enable slowapi request limits."""

    # Server settings
    HOST: str = os.getenv("HOST", "127.0.0.1")
    """Bind address for the bundled uvicorn server."""

    PORT: int = int(os.getenv("PORT", "8000"))
    """Port for the bundled uvicorn server."""

    @property
    def is_production(self) -> bool:
        """Check if running in production environment.

        Returns:
            True if ENVIRONMENT is 'production' (case-insensitive)
        """
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment.

        Returns:
            True if ENVIRONMENT is 'development' (case-insensitive)
        """
        return self.ENVIRONMENT.lower() == "development"


settings = Settings()
"""Global settings instance. Import and use throughout the application."""

"""Configuration module for Recurring Reminder Service.

This module provides configuration settings using Pydantic Settings.
Environment variables can be used to override default values.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings for Recurring Reminder Service.

    All settings can be overridden via environment variables.
    Example: export DATABASE_URL="postgresql://..."
    """

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./reminders.db"
    """Database connection URL. Default: SQLite file in current directory"""

    # API Server Configuration
    API_HOST: str = "0.0.0.0"
    """API server host address"""

    API_PORT: int = 8005
    """API server port"""

    # MCP Server Configuration
    MCP_HOST: str = "127.0.0.1"
    """MCP server host address"""

    MCP_PORT: int = 8006
    """MCP server port for SSE transport (separate from REST API)"""

    MCP_TRANSPORT: str = "sse"
    """MCP transport type: 'stdio' for local, 'sse' for network access"""

    # General Configuration
    TIMEZONE: str = "UTC"
    """Timezone assumed for naive datetimes received from clients"""

    # Logging Configuration
    LOG_DIR: str = "logs"
    """Directory for rotating log files, relative paths resolve against the service directory"""

    LOG_LEVEL: str = "INFO"
    """Minimum level for file and console output (DEBUG, INFO, WARNING, ERROR)"""

    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    """Size at which a log file is rotated"""

    LOG_BACKUP_COUNT: int = 5
    """Number of rotated log files kept per component"""

    # Background Worker Configuration
    WORKER_ENABLED: bool = True
    """Enable/disable the recurring catch-up worker"""

    WORKER_CHECK_INTERVAL: int = 60
    """Interval in seconds between catch-up sweeps"""

    # Recurring Generation Configuration
    RECURRING_CHECK_THROTTLE_SECONDS: int = 300
    """Minimum seconds between two catch-up sweeps for the same user"""

    RECURRING_PROCESSED_COOLDOWN_SECONDS: int = 600
    """Seconds during which an overdue occurrence is not processed again"""

    SWEEP_TIMEOUT_SECONDS: float = 10.0
    """Wall-clock timeout around one user's catch-up sweep"""

    MAX_SCAN_ITERATIONS: int = 366
    """Day-by-day scan bound handed to the recurrence engine"""

    # Notification Service Configuration
    NOTIFICATIONS_ENABLED: bool = True
    """Enable/disable calls to the notification service"""

    NOTIFICATION_API_URL: str = "http://127.0.0.1:1801"
    """Base URL of the notification service"""

    class Config:
        """Pydantic config"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()

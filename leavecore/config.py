# LeaveCore - Configuration
# Application settings loaded from environment variables

from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Create a .env file in the project root for local development:

        # .env
        LEAVECORE_DB_SERVER=localhost
        LEAVECORE_DB_NAME=leavecore
        LEAVECORE_DB_USER=leavecore_app
        LEAVECORE_DB_PASSWORD=your_password_here

    Set LEAVECORE_DB_URL to bypass the SQL Server URL builder entirely
    (e.g. "sqlite:///./leavecore.db" for a local sandbox).
    """

    model_config = SettingsConfigDict(
        env_prefix="LEAVECORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "LeaveCore"
    debug: bool = False

    # Database - SQL Server connection
    db_server: str = "localhost"
    db_port: int = 1433
    db_name: str = "leavecore"
    db_user: str = "leavecore_app"
    db_password: str = "leavecore_password"

    # Optional: Schema for all tables (e.g., "hr")
    # If not set, the server default schema is used
    db_schema: Optional[str] = None

    # Windows Authentication instead of SQL auth
    db_trusted_connection: bool = False

    # Full SQLAlchemy URL; takes precedence over the db_* fields
    db_url: Optional[str] = None

    # Connection pool settings
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800  # Recycle connections after 30 min

    # Leave engine
    escalation_threshold_days: int = 3
    rl_leave_type_code: str = "RL"
    fallback_approver_id: Optional[int] = None
    weekend_days: list[int] = [5, 6]  # date.weekday(): Saturday, Sunday

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def database_url(self) -> str:
        """
        Build the connection URL for SQLAlchemy.

        Uses pyodbc with ODBC Driver 17 for SQL Server unless db_url is set.
        """
        if self.db_url:
            return self.db_url

        if self.db_trusted_connection:
            # Windows Authentication
            connection_string = (
                f"DRIVER={{ODBC Driver 17 for SQL Server}};"
                f"SERVER={self.db_server},{self.db_port};"
                f"DATABASE={self.db_name};"
                f"Trusted_Connection=yes;"
            )
        else:
            # SQL Server Authentication
            connection_string = (
                f"DRIVER={{ODBC Driver 17 for SQL Server}};"
                f"SERVER={self.db_server},{self.db_port};"
                f"DATABASE={self.db_name};"
                f"UID={self.db_user};"
                f"PWD={self.db_password};"
            )

        return f"mssql+pyodbc:///?odbc_connect={quote_plus(connection_string)}"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only load settings once.
    """
    return Settings()

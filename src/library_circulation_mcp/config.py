"""Configuration management for the Library Circulation MCP Server.

Configuration covers four areas:
1. Protocol Metadata - Server name and version for the MCP handshake
2. Transport Configuration - stdio or Streamable HTTP
3. Persistence - SQLite location and lock wait budget
4. Circulation Defaults - Policy values used when the settings table is silent
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .circulation.policy import PolicyConfig


class ServerConfig(BaseSettings):
    """MCP Server configuration loaded from LIBRARY_CIRCULATION_* variables.

    Policy fields here are only the fallback layer. Branch librarians tune
    the live values through the ``settings`` table, which wins whenever a
    key is present and parseable.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_CIRCULATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    # === Server Metadata (Required by MCP Protocol) ===

    server_name: str = Field(
        default="library-circulation",
        description="MCP server name used in protocol handshake",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version for capability negotiation",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/circulation.db"),
        description="SQLite database file path",
    )

    sqlite_busy_timeout: float = Field(
        default=15.0,
        description="Seconds a writer waits for the SQLite write lock before failing",
        gt=0,
    )

    # === Transport Configuration ===

    transport: str = Field(
        default="stdio",
        description="Primary transport mechanism",
        pattern=r"^(stdio|streamable_http)$",
    )

    http_host: str = Field(
        default="127.0.0.1",
        description="HTTP server host for Streamable HTTP transport",
    )

    http_port: int = Field(
        default=8080,
        description="HTTP server port for Streamable HTTP transport",
        ge=1024,
        le=65535,
    )

    # === Circulation Policy Defaults ===

    loan_days_default: int = Field(
        default=15,
        description="Loan period applied when checkout gives no due date",
        ge=1,
    )

    extend_days_default: int = Field(
        default=15,
        description="Days added by an extension that does not specify a positive count",
        ge=1,
    )

    max_active_loans: int = Field(
        default=5,
        description="Open loans a member may hold at once",
        ge=0,
    )

    block_on_overdue: bool = Field(
        default=True,
        description="Refuse checkout while the member holds an overdue loan",
    )

    fine_enabled: bool = Field(
        default=False,
        description="Charge late fines on return",
    )

    fine_cents_per_day: int = Field(
        default=200,
        description="Late fine per day, in cents",
        ge=0,
    )

    # === Development Configuration ===

    debug: bool = Field(
        default=False,
        description="Enable debug logging for protocol messages",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    # === Validation Methods ===

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Ensure the database directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        """Validate server name meets MCP naming conventions."""
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    # === Computed Properties ===

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    @property
    def server_info(self) -> dict[str, str]:
        """Get server information for MCP handshake."""
        return {
            "name": self.server_name,
            "version": self.server_version,
            "transport": self.transport,
        }

    def get_database_url(self) -> str:
        return f"sqlite:///{self.database_path}"

    def policy_defaults(self) -> PolicyConfig:
        """Build the fallback circulation policy from environment values."""
        return PolicyConfig(
            loan_days_default=self.loan_days_default,
            extend_days_default=self.extend_days_default,
            max_active_loans=self.max_active_loans,
            block_on_overdue=self.block_on_overdue,
            fine_enabled=self.fine_enabled,
            fine_cents_per_day=self.fine_cents_per_day,
        )


# === Global Configuration Instance ===


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = ServerConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]

"""
API Gateway — Application Configuration
=========================================

What:  Process-wide gateway configuration loaded with Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and returns a frozen settings object.
Who:   Built once by the entry point and passed into GatewayServer.
When:  Loaded once at process start; read-only for the process lifetime.

Design Decision:
    There is no module-level `settings` singleton. The entry point calls
    load_settings() and hands the instance to every component that needs it,
    so tests can build independent gateways with different settings side by side.
"""

from typing import List, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# The gateway always listens here; there is no command-line override.
SERVER_PORT = 4000

DEVELOPMENT = "development"


class GatewaySettings(BaseSettings):
    """
    Gateway settings loaded from environment variables.

    All settings have sensible defaults for development.
    Production deployments MUST override NODE_ENV, CLIENT_URL and SESSION_KEYS.

    The model is frozen: assigning to any attribute after construction raises.
    """

    # ── Environment ───────────────────────────────────────────────────────
    # What: Deployment environment name
    # Affects: session cookie `secure` flag and API docs exposure
    node_env: str = Field(default=DEVELOPMENT)

    # ── CORS ──────────────────────────────────────────────────────────────
    # What: Client origin(s) allowed to call the gateway with credentials
    # Format: Comma-separated URLs (parsed by property below)
    client_url: str = Field(default="http://localhost:3000")

    # ── Search / index service ────────────────────────────────────────────
    elastic_search_url: str = Field(default="http://localhost:9200")

    # What: How many times the startup probe tries the cluster before giving up
    # Why 1: The probe is best-effort; requests that need the index fail on their own
    elastic_probe_attempts: int = Field(default=1, ge=1, le=20)

    # What: Upper bound (seconds) of the jittered wait between probe attempts
    elastic_probe_wait_max: int = Field(default=10, ge=1, le=120)

    # ── Session cookie ────────────────────────────────────────────────────
    # What: Ordered signing keys, comma separated. First key signs, all verify.
    # Empty: cookies are written unsigned (signing disabled)
    session_keys: str = Field(default="")

    # ── Server ────────────────────────────────────────────────────────────
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=SERVER_PORT, ge=1, le=65535)

    # What: Controls verbosity of the gateway logs
    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("node_env")
    @classmethod
    def normalize_node_env(cls, v: str) -> str:
        return v.strip().lower()

    @property
    def is_development(self) -> bool:
        return self.node_env == DEVELOPMENT

    @property
    def client_origins_list(self) -> List[str]:
        """Splits comma-separated client origins into a list, dropping blanks."""
        return [origin.strip() for origin in self.client_url.split(",") if origin.strip()]

    @property
    def session_keys_list(self) -> Tuple[str, ...]:
        """Signing keys in the order given. An empty tuple disables signing."""
        return tuple(key.strip() for key in self.session_keys.split(",") if key.strip())

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # NODE_ENV and node_env both work
        "frozen": True,
        "extra": "ignore",
    }


def load_settings(**overrides) -> GatewaySettings:
    """
    Build gateway settings from the environment.

    Keyword overrides take precedence over environment values; tests use them
    to build gateways without touching os.environ.
    """
    return GatewaySettings(**overrides)

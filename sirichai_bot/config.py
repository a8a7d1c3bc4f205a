"""Application settings loaded from the environment (.env supported)."""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()

DEFAULT_PRODUCT_DETAIL_URL = "https://shop.sirichaielectric.com/services/get-product-by-name.php"


class ConfigError(Exception):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, missing: List[str], invalid: Optional[List[str]] = None):
        self.missing = missing
        self.invalid = invalid or []
        problems = []
        if missing:
            problems.append(f"Missing required configuration: {', '.join(missing)}")
        if self.invalid:
            problems.append(f"Invalid configuration: {', '.join(self.invalid)}")
        super().__init__("; ".join(problems))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    return int(value)


class Settings:
    """
    Runtime configuration for the chatbot service.

    Values come from environment variables; call validate() at startup
    to fail fast when a required value is missing.
    """

    def __init__(self, **overrides):
        self.gemini_api_key: str = os.environ.get("GEMINI_API_KEY", "")
        self.gemini_model: str = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
        self.gemini_temperature: float = float(os.environ.get("GEMINI_TEMPERATURE", "0.7"))
        self.gemini_max_output_tokens: int = _env_int("GEMINI_MAX_OUTPUT_TOKENS", 1024)

        self.catalog_summary_url: str = os.environ.get("CATALOG_SUMMARY_URL", "")
        self.product_search_url: str = os.environ.get("PRODUCT_SEARCH_URL", "")
        self.product_detail_url: str = os.environ.get("PRODUCT_DETAIL_URL", DEFAULT_PRODUCT_DETAIL_URL)
        self.quotation_url: Optional[str] = os.environ.get("QUOTATION_URL") or None

        self.database_url: str = os.environ.get("DATABASE_URL", "sqlite:///./sirichai_bot.db")
        self.max_messages_per_conversation: int = _env_int("MAX_MESSAGES_PER_CONVERSATION", 50)
        self.message_retention_days: int = _env_int("MESSAGE_RETENTION_DAYS", 3)
        self.auto_resume_timeout_minutes: int = _env_int("AUTO_RESUME_TIMEOUT_MINUTES", 30)

        self.line_channel_secret: str = os.environ.get("LINE_CHANNEL_SECRET", "")
        self.line_channel_access_token: str = os.environ.get("LINE_CHANNEL_ACCESS_TOKEN", "")
        self.verify_line_signature: bool = _env_bool("VERIFY_LINE_SIGNATURE", True)

        self.cache_dir: str = os.environ.get("CACHE_DIR", "./cache")
        self.system_prompt_path: str = os.environ.get("SYSTEM_PROMPT_PATH", "./system-prompt.txt")
        self.log_level: str = os.environ.get("LOG_LEVEL", "INFO")
        self.environment: str = os.environ.get("ENVIRONMENT", "development")

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

    @property
    def catalog_cache_file(self) -> str:
        return os.path.join(self.cache_dir, "catalog-summary.txt")

    @property
    def file_cache_file(self) -> str:
        return os.path.join(self.cache_dir, "gemini-files.json")

    @property
    def line_enabled(self) -> bool:
        return bool(self.line_channel_access_token)

    def validate(self) -> None:
        """
        Check that every required setting is present.

        Raises:
            ConfigError: listing every missing variable
        """
        required = {
            "GEMINI_API_KEY": self.gemini_api_key,
            "CATALOG_SUMMARY_URL": self.catalog_summary_url,
            "PRODUCT_SEARCH_URL": self.product_search_url,
            "DATABASE_URL": self.database_url,
        }
        missing = [name for name, value in required.items() if not value]
        if self.verify_line_signature and self.line_enabled and not self.line_channel_secret:
            missing.append("LINE_CHANNEL_SECRET")
        invalid = []
        if self.message_retention_days < 1:
            invalid.append("MESSAGE_RETENTION_DAYS must be at least 1")
        if self.max_messages_per_conversation < 1:
            invalid.append("MAX_MESSAGES_PER_CONVERSATION must be at least 1")
        if missing or invalid:
            raise ConfigError(missing, invalid)


@lru_cache()
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()

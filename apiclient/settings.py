"""Environment-driven configuration for the API client."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True, slots=True)
class Settings:
    """Container for runtime configuration."""

    api_base_url: str
    api_timeout: float = DEFAULT_TIMEOUT
    api_token: str = ""

    @classmethod
    def load(cls) -> "Settings":
        """
        Load configuration from environment variables.

        Python-dotenv is used so developers can rely on a local .env file without
        exporting variables globally.
        """
        load_dotenv()

        api_base_url = os.getenv("API_BASE_URL", "").strip()
        if not api_base_url:
            raise ValueError("API_BASE_URL is required but was not provided.")

        api_timeout_raw = os.getenv("API_TIMEOUT", "").strip() or str(DEFAULT_TIMEOUT)
        try:
            api_timeout = float(api_timeout_raw)
        except ValueError as exc:
            raise ValueError("API_TIMEOUT must be a numeric value.") from exc
        if api_timeout <= 0:
            raise ValueError("API_TIMEOUT must be greater than zero.")

        api_token = os.getenv("API_TOKEN", "").strip()

        return cls(
            api_base_url=api_base_url,
            api_timeout=api_timeout,
            api_token=api_token,
        )

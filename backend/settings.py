import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class Settings:
    # Default LLM endpoint, OpenRouter's OpenAI-compatible API
    DEFAULT_LLM_BASE_URL = "https://openrouter.ai/api/v1"
    DEFAULT_LLM_MODEL = "anthropic/claude-3.7-sonnet"
    # Development only; set AUTH_SECRET in any shared deployment
    DEFAULT_AUTH_SECRET = "startai-dev-secret-change-me-0123456789"

    def __init__(self):
        self._llm_base_url = os.environ.get("LLM_BASE_URL", self.DEFAULT_LLM_BASE_URL).rstrip("/")
        self._llm_model = os.environ.get("LLM_MODEL", self.DEFAULT_LLM_MODEL)
        self._llm_api_key = os.environ.get("LLM_API_KEY", os.environ.get("OPENROUTER_API_KEY", ""))
        self._llm_timeout = float(os.environ.get("LLM_TIMEOUT", "60"))
        self._thinking_max_tokens = int(os.environ.get("THINKING_MAX_TOKENS", "500"))
        self._plan_max_tokens = int(os.environ.get("PLAN_MAX_TOKENS", "1000"))
        self._auth_secret = os.environ.get("AUTH_SECRET", self.DEFAULT_AUTH_SECRET)
        self._auth_token_ttl_minutes = int(os.environ.get("AUTH_TOKEN_TTL_MINUTES", "60"))
        self._cors_origins = os.environ.get("CORS_ORIGINS", "*")

    def get_llm_base_url(self) -> str:
        """Returns the base URL for the LLM API (e.g. 'https://openrouter.ai/api/v1')."""
        return self._llm_base_url

    def set_llm_base_url(self, url: str):
        self._llm_base_url = url.rstrip("/")

    def get_llm_model(self) -> str:
        """Model identifier shared by both passes of the prompt chain."""
        return self._llm_model

    def get_llm_api_key(self) -> str:
        return self._llm_api_key.strip()

    def set_llm_api_key(self, key: str):
        self._llm_api_key = key

    def get_llm_timeout(self) -> float:
        return self._llm_timeout

    def get_thinking_max_tokens(self) -> int:
        return self._thinking_max_tokens

    def get_plan_max_tokens(self) -> int:
        return self._plan_max_tokens

    def get_auth_secret(self) -> str:
        return self._auth_secret

    def uses_default_auth_secret(self) -> bool:
        return self._auth_secret == self.DEFAULT_AUTH_SECRET

    def warn_if_default_auth_secret(self) -> bool:
        """Log a warning when tokens are signed with the built-in development secret."""
        if self.uses_default_auth_secret():
            logger.warning("AUTH_SECRET is not set; session tokens are signed with the built-in development secret.")
            return True
        return False

    def get_auth_token_ttl_minutes(self) -> int:
        return self._auth_token_ttl_minutes

    def get_cors_origins(self) -> list[str]:
        """Comma-separated CORS_ORIGINS as a list."""
        return [origin.strip() for origin in self._cors_origins.split(",") if origin.strip()]


settings = Settings()

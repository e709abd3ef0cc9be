import os
from dotenv import load_dotenv

# Explicitly load .env from current working directory
load_dotenv(os.path.join(os.getcwd(), ".env"))

# Load unified settings (after dotenv so env vars are available)
from opsmate.settings import get_settings as _get_settings  # noqa: E402

_s = _get_settings()


class Config:
    USER_CONFIG_DIR = os.path.expanduser("~/.opsmate")

    OPSMATE_BASE_URL = _s.llm.base_url
    OPSMATE_API_KEY = _s.llm.api_key
    OPSMATE_MODEL = _s.llm.model
    OPSMATE_TIMEOUT = _s.llm.timeout

    # Logging Configuration
    LOG_DIR = os.path.join(os.getcwd(), "logs")
    LOG_FILE = os.path.join(LOG_DIR, "opsmate.log")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    AUDIT_LOG_FILE = _s.audit.log_file

    @classmethod
    def ensure_config_dir(cls):
        """Ensure the user config directory exists."""
        os.makedirs(cls.USER_CONFIG_DIR, exist_ok=True)

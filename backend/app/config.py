# backend/app/config.py
import os

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()  # Loads .env automatically

# Checked in this order; the first non-empty one wins.
API_KEY_NAMES = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY")
PLACEHOLDER_VALUES = {"", "your_key_here", "YOUR_KEY_HERE", "your_key", "replace_me"}

MODEL_NAME = os.getenv("SEPARATOR_MODEL", "gemini-2.5-flash")
TEMPERATURE = float(os.getenv("SEPARATOR_TEMPERATURE", "0.2"))
REQUEST_TIMEOUT = float(os.getenv("SEPARATOR_TIMEOUT", "60"))
LOG_LEVEL = os.getenv("SEPARATOR_LOG_LEVEL", "INFO").upper()

EXPORT_FILENAME = "thumbnail_data.json"


def get_api_key() -> str:
    """
    Return the Gemini API key from the environment.

    Raises ConfigurationError when none of API_KEY_NAMES holds a real value,
    so callers fail before any network call is attempted.
    """
    for name in API_KEY_NAMES:
        value = (os.getenv(name) or "").strip()
        if value and value not in PLACEHOLDER_VALUES:
            return value
    raise ConfigurationError(
        "API key is missing. Set GEMINI_API_KEY (or GOOGLE_API_KEY) in the environment or .env."
    )

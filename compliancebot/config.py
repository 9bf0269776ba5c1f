"""
ComplianceBot Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

# Render sets RENDER=true automatically
_ON_RENDER = os.getenv("RENDER", "").lower() == "true"
_DATA_DIR = "/data/" if _ON_RENDER else ""


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Versioning ---
    API_VERSION: str = "1"

    # --- LLM Provider ---
    LLM_PROVIDER: str = os.getenv("COMPLIANCEBOT_LLM_PROVIDER", "gemini")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    # --- Reviewer ---
    MAX_REVIEW_CHARS: int = int(os.getenv("COMPLIANCEBOT_MAX_REVIEW_CHARS", "30000"))
    REVIEW_TIMEOUT_SECONDS: float = float(
        os.getenv("COMPLIANCEBOT_REVIEW_TIMEOUT", "60")
    )

    # --- Learning Store ---
    LEARNING_DB_PATH: str = os.getenv(
        "COMPLIANCEBOT_LEARNING_DB", f"{_DATA_DIR}compliancebot_learning.db"
    )
    SNIPPET_CHARS: int = int(os.getenv("COMPLIANCEBOT_SNIPPET_CHARS", "500"))
    PENDING_LIMIT: int = int(os.getenv("COMPLIANCEBOT_PENDING_LIMIT", "50"))

    # --- Ledger ---
    LEDGER_DB_PATH: str = os.getenv(
        "COMPLIANCEBOT_LEDGER_DB", f"{_DATA_DIR}compliancebot_ledger.db"
    )

    # --- Server ---
    HOST: str = os.getenv("COMPLIANCEBOT_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("COMPLIANCEBOT_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("COMPLIANCEBOT_CORS_ORIGINS", "*")


settings = Settings()

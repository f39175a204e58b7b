"""
Configuration management for the application.

Loads environment variables and provides centralized config access.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration"""

    # Flask settings
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    DEBUG: bool = FLASK_ENV == "development"
    FRONTEND_URL: Optional[str] = os.getenv("FRONTEND_URL")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # OpenAI settings
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_EMBEDDING_MODEL: str = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIMENSIONS: int = int(os.getenv("EMBEDDING_DIMENSIONS", "1536"))

    # Workspace behaviour
    AUTOSAVE_DELAY_SECONDS: float = float(os.getenv("AUTOSAVE_DELAY_SECONDS", "1.0"))
    SYNC_DEBOUNCE_SECONDS: float = float(os.getenv("SYNC_DEBOUNCE_SECONDS", "0.0"))
    IDENTITY_FILE: Path = Path(
        os.getenv("NOTEMIND_IDENTITY_FILE", str(Path.home() / ".notemind" / "workspace_id"))
    )

    # Note export (GitHub contents API)
    GITHUB_REPO_URL: Optional[str] = os.getenv("GITHUB_REPO_URL")
    GITHUB_TOKEN: Optional[str] = os.getenv("GITHUB_TOKEN")
    GITHUB_BRANCH: str = os.getenv("GITHUB_BRANCH", "main")
    GITHUB_API_URL: str = os.getenv("GITHUB_API_URL", "https://api.github.com")

    # Storage settings
    BASE_DIR: Path = Path(__file__).parent.parent

    @classmethod
    def validate(cls):
        """Validate required configuration"""
        errors = []

        if not cls.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY is not set")

        if cls.AUTOSAVE_DELAY_SECONDS <= 0:
            errors.append("AUTOSAVE_DELAY_SECONDS must be positive")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")


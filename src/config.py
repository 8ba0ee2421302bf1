"""Runtime settings read from the environment (and `.env` via python-dotenv)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MODEL = "claude-haiku-4-5-20251001"


@dataclass(frozen=True)
class Settings:
    """Everything the CLI needs to wire up a pipeline."""

    anthropic_api_key: str = ""
    model_id: str = DEFAULT_MODEL
    answer_language: str = "English"
    client_secrets_path: Path = Path("data/client_secret.json")
    token_cache_path: Path = Path("data/google_token.json")
    credential_path: Path = Path("data/credential.json")
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Build Settings from environment variables, falling back to defaults."""
        return cls(
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            model_id=os.environ.get("RAG_MODEL", DEFAULT_MODEL),
            answer_language=os.environ.get("ANSWER_LANGUAGE", "English"),
            client_secrets_path=Path(
                os.environ.get("GOOGLE_CLIENT_SECRETS", "data/client_secret.json")
            ),
            token_cache_path=Path(
                os.environ.get("GOOGLE_TOKEN_CACHE", "data/google_token.json")
            ),
            credential_path=Path(os.environ.get("CREDENTIAL_PATH", "data/credential.json")),
            log_level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        )

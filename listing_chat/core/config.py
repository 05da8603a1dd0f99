import os
from pathlib import Path

from pydantic import ConfigDict, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SECRET: str
    DATABASE_URL: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Transient store failures (lost connection, lock timeout) are retried
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 0.05
    STORE_RETRY_BACKOFF_MAX_SECONDS: float = 1.0
    # Insert-or-fetch rounds for the conversation dedup key
    CONVERSATION_CONFLICT_RETRIES: int = 3

    MESSAGE_PAGE_SIZE: int = 40
    MESSAGE_PAGE_MAX_SIZE: int = 100
    MESSAGE_PREVIEW_MAX_LENGTH: int = 120

    REALTIME_QUEUE_SIZE: int = 100

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8")

    @classmethod
    def get_required_fields(cls) -> list[str]:
        """Get all required fields (those without default values)."""
        return [
            name for name, field in cls.model_fields.items() if field.is_required()
        ]

    def __init__(self, **kwargs):
        try:
            # pydantic_settings reads the .env file first, then environment variables
            super().__init__(**kwargs)
        except ValidationError as e:
            env_file = Path(".env")
            required_fields = self.get_required_fields()

            missing_fields = [field for field in required_fields if not os.getenv(field)]

            if missing_fields:
                fields_str = "\n".join(f"- {field}" for field in missing_fields)
                example_env = "\n".join(
                    f"{field}=your_{field.lower()}_here" for field in missing_fields
                )

                if not env_file.exists():
                    error_msg = (
                        f"\n\nError: Missing required environment variables!"
                        f"\nMissing variables: {fields_str}"
                        f"\n\nFor local development, create a .env file with:"
                        f"\n{example_env}"
                    )
                else:
                    error_msg = (
                        f"\n\nError: Missing required environment variables!"
                        f"\nMissing variables: {fields_str}"
                        f"\n\nPlease add these to your .env file or set as environment variables."
                    )

                raise ValueError(error_msg) from e
            else:
                raise


settings = Settings()

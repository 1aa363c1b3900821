"""Application-wide configuration loader.

Every setting is read from the environment once at import time and exposed
through the module-level ``settings`` singleton that the rest of the code
imports.
"""

import os


class Settings:
    """Settings helper that gracefully falls back to sane defaults.

    Rationale
    ---------
    When docker-compose injects an environment variable whose value is empty
    (e.g. ``REMOTE_URL=""``) ``os.getenv("REMOTE_URL", default)`` returns an
    empty string *not* ``None``.  To keep the in-code defaults useful we use
    the idiom

        os.getenv(KEY) or DEFAULT

    so that *falsy* values ("", None) are replaced by the specified DEFAULT.
    """

    # Local fallback store
    DATA_ROOT: str = os.getenv('DATA_ROOT') or 'data'
    DATABASE_URL: str = os.getenv('DATABASE_URL') or 'sqlite:///data/voicenotes.db'
    DB_ECHO: bool = (os.getenv('DB_ECHO') or '0').lower() in ('1', 'true', 'yes')
    LOG_DIR: str = os.getenv('LOG_DIR') or 'backend/logs'

    # Remote (PostgREST / Supabase style) store.  An empty URL disables it and
    # every transcript is kept in the local store.
    REMOTE_URL: str = (os.getenv('REMOTE_URL') or '').rstrip('/')
    REMOTE_API_KEY: str = os.getenv('REMOTE_API_KEY') or ''
    REMOTE_SERVICE_KEY: str = os.getenv('REMOTE_SERVICE_KEY') or ''
    REMOTE_TIMEOUT_SECONDS: float = float(os.getenv('REMOTE_TIMEOUT_SECONDS') or '10')

    # Save / retry policy
    SAVE_MAX_RETRIES: int = int(os.getenv('SAVE_MAX_RETRIES') or '2')
    SAVE_RETRY_BACKOFF_SECONDS: float = float(os.getenv('SAVE_RETRY_BACKOFF_SECONDS') or '1')

    # Read-through cache
    CACHE_TTL_SECONDS: float = float(os.getenv('CACHE_TTL_SECONDS') or '300')

    # Trash lifecycle
    TRASH_RETENTION_DAYS: int = int(os.getenv('TRASH_RETENTION_DAYS') or '30')
    TRASH_SWEEP_INTERVAL_SECONDS: float = float(os.getenv('TRASH_SWEEP_INTERVAL_SECONDS') or '3600')

    # Editor limits
    MAX_EDIT_LENGTH: int = int(os.getenv('MAX_EDIT_LENGTH') or '5000')
    DEFAULT_LANGUAGE: str = os.getenv('DEFAULT_LANGUAGE') or 'en-US'

    # Background worker
    CELERY_BROKER_URL: str = os.getenv('CELERY_BROKER_URL') or 'redis://broker:6379/0'
    CELERY_RESULT_BACKEND: str = os.getenv('CELERY_RESULT_BACKEND') or 'redis://broker:6379/0'

    @property
    def remote_enabled(self) -> bool:
        return bool(self.REMOTE_URL)


settings = Settings()

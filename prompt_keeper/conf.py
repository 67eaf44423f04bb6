"""
Prompt Keeper configuration.

Values are read once from the process environment at import time.
Components take explicit arguments that default to these values.
"""
import os
from pathlib import Path


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


BASE_DIR = Path(os.environ.get('PROMPT_KEEPER_HOME', Path.cwd()))
DATA_DIR = Path(os.environ.get('PROMPT_KEEPER_DATA_DIR', BASE_DIR / 'data'))
ENV_FILE = Path(os.environ.get('PROMPT_KEEPER_ENV_FILE', BASE_DIR / '.env'))
DATABASE_PATH = Path(
    os.environ.get('PROMPT_KEEPER_DATABASE', DATA_DIR / 'app.db')
)
LEGACY_PROMPTS_FILE = DATA_DIR / 'prompts.json'

## Session
SESSION_KEY = 'user_id'
SESSION_ID = 'session_id'
SESSION_COOKIE_NAME = os.environ.get('SESSION_COOKIE_NAME', 'pk.sid')
SESSION_MAX_AGE = int(os.environ.get('SESSION_MAX_AGE', 7 * 24 * 60 * 60))
SESSION_COOKIE_SECURE = _as_bool(
    os.environ.get(
        'SESSION_COOKIE_SECURE',
        str(os.environ.get('ENVIRONMENT', '') == 'production')
    )
)
SESSION_COOKIE_SAMESITE = 'Lax'

## Passwords
BCRYPT_ROUNDS = int(os.environ.get('BCRYPT_ROUNDS', 12))
MIN_PASSWORD_LENGTH = 8

## API keys
DEFAULT_KEY_NAME = 'anthropic'
# secrets of this length or shorter are shown fully masked
PREVIEW_MASK_THRESHOLD = 11
MASKED_PLACEHOLDER = '****'

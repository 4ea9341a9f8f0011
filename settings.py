import sys
from typing import Literal

from dotenv import load_dotenv
from loguru import logger as l
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix='CLEANER_')

    tracker: Literal['jira', 'backlog'] = 'jira'
    base_url: str = ''
    login: str | None = None
    password: str | None = None
    api_key: str | None = None
    request_timeout: float = 30.0
    page_size: int = 100
    fetch_workers: int = 5
    delete_workers: int = 4
    delete_retries: int = 2
    retry_delay: float = 1.0
    delimiter: str = ';'
    time_format: str = '%Y-%m-%d %H:%M:%S'
    log_level: str = 'INFO'
    log_file: str | None = None

    @field_validator('page_size', 'fetch_workers', 'delete_workers')
    @classmethod
    def positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError('must be at least 1')
        return value

    @field_validator('base_url')
    @classmethod
    def strip_slash(cls, value: str) -> str:
        return value.rstrip('/')


def setup_logging(level: str | None = None, log_file: str | None = None):
    logger.remove()
    logger.add(sys.stderr, level=level or settings.log_level)
    log_file = log_file or settings.log_file
    if log_file:
        logger.add(log_file, rotation='10 MB', retention='10 days', level='DEBUG', enqueue=True)


load_dotenv()
settings = Settings()
logger = l

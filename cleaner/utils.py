import asyncio
from typing import Callable

from settings import logger
from tracker_api.exceptions import RateLimitError


async def call_with_retries(func: Callable, *args, retries: int = 2, delay: float = 1.0, description: str = ''):
    attempt = 0
    while True:
        try:
            return await asyncio.to_thread(func, *args)
        except RateLimitError as e:
            if attempt >= retries:
                logger.error(f'Лимит запросов превышен, попытки исчерпаны: {description}')
                raise
            pause = max(delay * 2**attempt, e.retry_after or 0)
            attempt += 1
            logger.warning(f'Лимит запросов превышен ({description}), повтор {attempt}/{retries} через {pause:.1f} сек.')
            await asyncio.sleep(pause)

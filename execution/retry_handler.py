import logging
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from typing import Callable, Any

from execution.llm_client import LLMProviderError, LLMTransportError
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)


def is_retryable_llm_error(error: BaseException) -> bool:
    """Transport failures and throttling/server-side provider errors."""
    if isinstance(error, LLMTransportError):
        return True
    return isinstance(error, LLMProviderError) and error.retryable


class RetryHandler:
    """Re-runs an async call with exponential back-off.

    ``max_retries`` is the total attempt count, including the first call.
    """

    def __init__(
        self,
        max_retries: int = config.MAX_RETRIES,
        base_delay: float = config.RETRY_BASE_DELAY,
        max_delay: float = config.RETRY_MAX_DELAY
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    async def execute_with_retry(
        self,
        func: Callable,
        *args,
        retry_on: Callable[[BaseException], bool] = is_retryable_llm_error,
        **kwargs
    ) -> Any:
        """Await ``func(*args, **kwargs)``, retrying while ``retry_on`` accepts the error.

        The last error is re-raised once attempts run out.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception(retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await func(*args, **kwargs)

"""Retry utilities with exponential backoff for HTTP requests."""

import logging

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
import httpx
import structlog

from couponfarm.config import settings


logger = structlog.get_logger(__name__)


RETRYABLE_HTTP_ERRORS = (
    httpx.HTTPStatusError,
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)


# Reusable retry decorator for page fetches (httpx)
http_retry = retry(
    stop=stop_after_attempt(settings.MAX_REQUEST_RETRIES),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception_type(RETRYABLE_HTTP_ERRORS),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


# Single quick retry for coupon API calls; callers have their own fallbacks
api_retry = retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type(
        (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError)
    ),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)

"""User-Agent rotation and default request headers."""

import random
from typing import Dict, List


# Desktop browsers only; several coupon sites serve stripped mobile
# templates that lack the listing selectors.
USER_AGENTS: List[str] = [
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:109.0) Gecko/20100101 Firefox/117.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
]

# Sent with every request unless an adapter overrides it
CUSTOM_HEADERS: Dict[str, str] = {
    "User-Agent": USER_AGENTS[0],
}


def get_random_user_agent() -> str:
    """Get a random desktop user-agent string."""
    return random.choice(USER_AGENTS)


def build_headers(extra: Dict[str, str] = None, rotate: bool = False) -> Dict[str, str]:
    """Merge adapter-specific headers over the defaults.

    Args:
        extra: Headers that take precedence over CUSTOM_HEADERS
        rotate: Pick a random user agent instead of the default one

    Returns:
        New header dict
    """
    headers = dict(CUSTOM_HEADERS)
    if rotate:
        headers["User-Agent"] = get_random_user_agent()
    if extra:
        headers.update(extra)
    return headers

"""Extract Bilibili session cookies from the passport redirect URL."""

import logging
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)

# Order is significant: the persisted string always lists tokens in this order.
COOKIE_NAMES = ("DedeUserID", "DedeUserID__ckMd5", "SESSDATA", "bili_jct")


def extract_cookies_from_url(url: str | None) -> str | None:
    """Return the session cookie string carried by a login redirect URL.

    Only the four session tokens are picked out, in a fixed order, joined with
    ``"; "``. Returns None when the URL can't be parsed or carries none of them.
    """
    if not url:
        return None

    try:
        parts = urlsplit(url)
        if not parts.scheme:
            raise ValueError("not an absolute URL")
        params = parse_qs(parts.query, keep_blank_values=True)
    except ValueError as e:
        logger.warning("Could not extract cookies from redirect URL: %s", e)
        return None

    cookie_parts: list[str] = []
    for name in COOKIE_NAMES:
        values = params.get(name)
        if values and values[0]:
            cookie_parts.append(f"{name}={values[0]}")

    if not cookie_parts:
        logger.warning("Redirect URL carried none of the session cookies")
        return None

    logger.debug("Extracted cookies: %s", ", ".join(p.split("=", 1)[0] for p in cookie_parts))
    return "; ".join(cookie_parts)


def parse_cookie_string(cookies: str) -> dict[str, str]:
    """Split a ``"a=1; b=2"`` string into a dict, skipping malformed pairs."""
    result: dict[str, str] = {}
    for pair in cookies.split(";"):
        name, sep, value = pair.strip().partition("=")
        if sep and name:
            result[name] = value
    return result

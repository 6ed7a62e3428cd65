"""Library for comparing repository URLs."""

import logging
import re
from urllib.parse import urlsplit

__all__ = [
    "normalize_git_url",
]

_LOGGER = logging.getLogger(__name__)

# e.g. git@github.com:example/repo.git
_SCP_URL = re.compile(r"^(?:(?P<user>[^@/]+)@)?(?P<host>[^:/]+):(?P<path>[^/].*)$")

_DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
    "ssh": 22,
    "git": 9418,
}


def normalize_git_url(url: str) -> str:
    """Return a canonical form of a Git URL suitable for equality checks.

    Case, scheme, credentials, default ports, a trailing slash and a `.git`
    suffix are all ignored, so `https://github.com/Example/Repo.git` and
    `git@github.com:example/repo` normalize to the same value.
    """
    url = url.strip().lower()
    if "://" not in url and (match := _SCP_URL.match(url)):
        url = f"ssh://{match.group('host')}/{match.group('path')}"
    try:
        parts = urlsplit(url if "://" in url else f"https://{url}")
        port = parts.port
    except ValueError:
        _LOGGER.debug("Unable to parse git URL %s", url)
        return url
    host = parts.hostname or ""
    if port is not None and _DEFAULT_PORTS.get(parts.scheme) != port:
        host = f"{host}:{port}"
    path = parts.path.rstrip("/")
    path = path.removesuffix(".git").rstrip("/")
    return f"{host}{path}"

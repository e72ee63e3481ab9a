"""Configuration settings for the posts API conformance suite."""
import os
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def validate_base_url(url: str) -> str:
    """Return url without a trailing slash, or raise ValueError if it is not absolute http(s)."""
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(
            f"Invalid POSTS_API_BASE_URL: {url!r}. "
            "Expected an absolute http(s) URL such as http://localhost:3000"
        )
    return url.rstrip("/")


# Target API
API_BASE_URL = validate_base_url(os.getenv("POSTS_API_BASE_URL", "http://localhost:3000"))
REQUEST_TIMEOUT = float(os.getenv("POSTS_API_TIMEOUT", "10.0"))

# Path segment of the guarded collection (json-server-auth "664" route)
PROTECTED_OWNER = os.getenv("POSTS_API_PROTECTED_OWNER", "664")

# Run checks against the in-process fake API instead of the real target
FAKE_API = os.getenv("POSTS_API_FAKE", "").lower() in ("1", "true", "yes")

# Where failed checks are written as JSON
FAILURES_DIR = os.getenv("POSTS_API_FAILURES_DIR", "failures")

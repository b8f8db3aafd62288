from urllib.parse import urlparse
import re

ALLOWED_SCHEMES = ('http', 'https', 'ftp')
MAX_URL_LENGTH = 2048

# Whitespace anywhere or a host starting with a separator is never valid
URL_SHAPE = re.compile(r'^[a-z]+://[^\s/$.?#][^\s]*$', re.IGNORECASE)


def is_valid_url(url: str) -> tuple[bool, str]:
    """
    Validate that a URL is absolute and safe to redirect to.

    Args:
        url: The URL to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not url:
        return False, "URL cannot be empty"

    if len(url) > MAX_URL_LENGTH:
        return False, f"URL is too long (max {MAX_URL_LENGTH} characters)"

    if not URL_SHAPE.match(url):
        return False, "Invalid URL format"

    try:
        result = urlparse(url)
    except ValueError as e:
        return False, f"Invalid URL: {str(e)}"

    # Must have scheme and netloc
    if not all([result.scheme, result.netloc]):
        return False, "Invalid URL format"

    if result.scheme.lower() not in ALLOWED_SCHEMES:
        return False, "Only HTTP, HTTPS and FTP URLs are allowed"

    # Check for suspicious/blocked hosts
    suspicious_hosts = [
        'localhost',
        '127.0.0.1',
        '0.0.0.0',
        '[::1]',
    ]
    host = (result.hostname or '').lower()
    if result.netloc.lower() in suspicious_hosts or host in suspicious_hosts:
        return False, "Internal/private URLs are not allowed"

    return True, ""

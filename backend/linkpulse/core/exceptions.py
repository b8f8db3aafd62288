"""
Custom exceptions for LinkPulse.

Errors that break identity or uniqueness guarantees (code generation, alias
collisions, missing links) are raised to the caller. Errors that only reduce
analytics fidelity (ResolutionDegraded, RecordingFailure,
AggregationPartialFailure) are caught where they happen and logged.
"""


class LinkPulseError(Exception):
    """Base exception for the service."""
    pass


class GenerationExhausted(LinkPulseError):
    """Raised when no unique short code was found within the attempt bound."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Unable to generate a unique short code after {attempts} attempts")


class InvalidURLError(LinkPulseError):
    """Raised when URL validation fails."""

    def __init__(self, url: str, reason: str = "Invalid URL format"):
        self.url = url
        self.reason = reason
        super().__init__(reason)


class InvalidAliasError(LinkPulseError):
    """Raised when a custom alias is malformed or reserved."""

    def __init__(self, alias: str, reason: str):
        self.alias = alias
        self.reason = reason
        super().__init__(reason)


class AliasUnavailable(LinkPulseError):
    """Raised when a custom alias is already used as an alias or a short code."""

    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"Alias '{alias}' is already taken")


class LinkNotFoundError(LinkPulseError):
    """Raised when a link does not exist or is not visible to the caller."""

    def __init__(self, link_ref):
        self.link_ref = link_ref
        super().__init__(f"Link '{link_ref}' not found")


class LinkUnavailable(LinkPulseError):
    """Raised when a link exists but is inactive or expired."""

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Link '{short_code}' is no longer available")


class ResolutionDegraded(LinkPulseError):
    """A single enrichment lookup returned an unusable response."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class RecordingFailure(LinkPulseError):
    """Persisting a click event failed."""

    def __init__(self, link_id: int, original_error: Exception = None):
        self.link_id = link_id
        self.original_error = original_error
        super().__init__(f"Failed to record click for link {link_id}: {original_error}")


class AggregationPartialFailure(LinkPulseError):
    """One section of an analytics report could not be computed."""

    def __init__(self, section: str, original_error: Exception = None):
        self.section = section
        self.original_error = original_error
        super().__init__(f"Analytics section '{section}' failed: {original_error}")


class DuplicateLink(LinkPulseError):
    """Raised when the owner already has a short link for the same URL."""

    def __init__(self, link):
        self.link = link
        super().__init__(f"URL is already shortened as '{link.short_code}'")

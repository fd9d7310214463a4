"""Error taxonomy for the website analysis pipeline.

Every error carries a ``kind`` (stable identifier) and a ``public_message``
that is safe to show to a tenant. Internal details (socket errors, provider
tracebacks) are logged where they occur and never copied into
``public_message``.
"""
from typing import Optional


class AnalysisError(Exception):
    kind = "AnalysisError"
    public_message = "Website analysis failed"

    def __init__(self, message: Optional[str] = None):
        if message:
            self.public_message = message
        super().__init__(self.public_message)

    def describe(self) -> str:
        """Message stored on the analysis record: description plus kind."""
        return f"{self.public_message} [{self.kind}]"


# --- Pre-flight: fatal, never retried, reported to the caller as 400 --- #

class PreflightError(AnalysisError):
    pass


class InvalidUrl(PreflightError):
    kind = "InvalidUrl"
    public_message = "Invalid URL format"


class DisallowedProtocol(PreflightError):
    kind = "DisallowedProtocol"
    public_message = "Only HTTP and HTTPS protocols are allowed"


class BlockedHost(PreflightError):
    kind = "BlockedHost"
    public_message = "Access to this host is not allowed"


class UnresolvableHost(PreflightError):
    kind = "UnresolvableHost"
    public_message = "Unable to resolve hostname. Please check the URL."


class DnsRebindingBlocked(PreflightError):
    kind = "DnsRebindingBlocked"
    public_message = "Domain resolves to a private IP address"


# --- Page-level: fatal for one page, a multi-page run continues --- #

class PageError(AnalysisError):
    pass


class RedirectRejected(PageError):
    kind = "RedirectRejected"
    public_message = "Website redirects are not supported. Please provide the final URL."


class HttpError(PageError):
    kind = "HttpError"

    def __init__(self, status: int):
        self.status = status
        super().__init__(f"Failed to fetch website: HTTP {status}")


class UnexpectedContentType(PageError):
    kind = "UnexpectedContentType"
    public_message = "Website did not return HTML content"


class EmptyContent(PageError):
    kind = "EmptyContent"
    public_message = "Website returned no readable content"


class Timeout(PageError):
    kind = "Timeout"
    public_message = "Website request timed out"


class SizeLimitExceeded(PageError):
    kind = "SizeLimitExceeded"
    public_message = "Website content exceeded size limit during download"


class SslCertificateError(PageError):
    kind = "SslCertificateError"
    public_message = "Website TLS certificate could not be verified"


class ConnectionFailed(PageError):
    kind = "ConnectionFailed"
    public_message = "Unable to access the website. Please check the URL and try again."


# --- Run-level: fatal for the whole analysis --- #

class RunError(AnalysisError):
    pass


class ScrapeFailed(RunError):
    kind = "ScrapeFailed"
    public_message = "Failed to scrape any pages"


class SynthesisFailed(RunError):
    kind = "SynthesisFailed"
    public_message = "Could not build a business profile from the website content"

"""Exception types raised by the webhook and authentication layers."""


class GitHubAppError(Exception):
    """Base class for everything this package raises on purpose."""


class ConfigError(GitHubAppError):
    pass


class SignatureMismatch(GitHubAppError):
    """The payload digest does not match the signature header."""


class MalformedSignature(GitHubAppError):
    """The signature header is missing, unparsable or for the wrong algorithm."""


class UnknownEventOrMalformedPayload(GitHubAppError):
    """The event kind is unrecognized or the body does not fit it."""


class MalformedPayload(UnknownEventOrMalformedPayload):
    pass


class SigningError(GitHubAppError):
    """The app JWT could not be signed (bad key or signing failure)."""


class ExchangeError(GitHubAppError):
    """GitHub refused or failed the installation token exchange."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class HandlerError(GitHubAppError):
    """Wraps an exception raised by a user-supplied event handler."""

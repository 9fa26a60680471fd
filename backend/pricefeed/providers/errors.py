from __future__ import annotations


class ProviderError(Exception):
    """A single provider failed to produce a quote."""

    retryable = True

    def __init__(self, provider: str, message: str = "") -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}" if message else provider)


class Unconfigured(ProviderError):
    retryable = False

    def __init__(self, provider: str) -> None:
        super().__init__(provider, "API key not configured")


class NetworkError(ProviderError):
    def __init__(self, provider: str, message: str = "", status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(provider, message)


class ProviderTimeout(ProviderError):
    pass


class RateLimited(ProviderError):
    def __init__(self, provider: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(provider, "rate limited")


class MalformedResponse(ProviderError):
    pass


class AllProvidersExhausted(Exception):
    def __init__(self, key: str, errors: list[ProviderError]) -> None:
        self.key = key
        self.errors = errors
        summary = "; ".join(str(error) for error in errors) or "no providers"
        super().__init__(f"{key}: {summary}")

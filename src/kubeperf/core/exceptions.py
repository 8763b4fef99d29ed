class KubePerfError(Exception):
    """Base exception for kubeperf."""

    pass


class FatalCollectionError(KubePerfError):
    """Raised when the required node inventory could not be listed.

    Without node capacity there is no denominator for any ratio, so this is
    the only condition that aborts a collection.
    """

    pass


class SourceUnavailable(KubePerfError):
    """Raised by a non-required source that failed or timed out."""

    def __init__(self, source: str, reason):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


class NormalizationError(KubePerfError, ValueError):
    """Raised when a resource quantity token cannot be parsed."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Cannot normalize quantity {token!r}")


class IncompleteAggregateWarning(UserWarning):
    """Condition logged when no derived source produced ratios or namespace data."""

    pass

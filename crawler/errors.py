class CrawlerError(Exception):
    pass


class InvalidURLError(CrawlerError, ValueError):
    def __init__(self, url, reason="malformed URL"):
        super().__init__(f"{url!r}: {reason}")
        self.url = url
        self.reason = reason


class RetryExhaustedError(CrawlerError):
    """A queue entry failed more often than the retry ceiling allows and was dropped."""

    def __init__(self, url, attempts, reason=None):
        msg = f"{url} dropped after {attempts} attempts"
        if reason:
            msg += f" (last error: {reason})"
        super().__init__(msg)
        self.url = url
        self.attempts = attempts
        self.reason = reason


class IndexConsistencyError(CrawlerError):
    pass

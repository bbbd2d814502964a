"""Cooperative cancellation tokens.

Cancellation is advisory: a canceled operation is not interrupted, it checks
its token before committing state and drops its result.
"""


class CancellationToken:
    """Read-only view of a cancellation flag."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancellation_requested(self) -> bool:
        return self._cancelled


class CancellationTokenSource:
    """Owns a token and is the only party allowed to cancel it."""

    def __init__(self) -> None:
        self.token = CancellationToken()

    def cancel(self) -> None:
        self.token._cancelled = True


# Token that is never canceled
NONE_TOKEN = CancellationToken()

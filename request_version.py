class RequestVersionTracker:
    """Monotonic version counter used to drop results of superseded fetches.

    A caller captures ``next()`` before starting work and discards the
    result when ``is_stale`` reports true once the work completes.
    """

    def __init__(self, initial_version: int = 0) -> None:
        self._version = initial_version

    def next(self) -> int:
        self._version += 1
        return self._version

    def invalidate(self) -> None:
        """Mark every previously issued version as stale."""
        self._version += 1

    def is_stale(self, version: int) -> bool:
        return version != self._version

    def current(self) -> int:
        return self._version

class NamespaceLabelCache:
    """Short-lived cache of namespace labels, keyed by namespace name."""

    def get_labels(self, namespace: str) -> dict[str, str] | None:
        """
        Return the cached labels of namespace, or None on a miss or expiry.
        """
        raise NotImplementedError

    def set_labels(
        self, namespace: str, labels: dict[str, str], ttl_seconds: int | None = None
    ) -> None:
        """
        Store labels with expiry now + ttl_seconds.
        """
        raise NotImplementedError

import json

import redis

from .interface import NamespaceLabelCache


class RedisNamespaceLabelCache(NamespaceLabelCache):
    def __init__(
        self, url: str, default_ttl_seconds: int = 30, timeout_seconds: float = 5
    ) -> None:
        # Every call returns or raises within timeout_seconds.
        self._client = redis.Redis.from_url(
            url,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        self._default_ttl_seconds = max(1, int(default_ttl_seconds))

    @staticmethod
    def _key(namespace: str) -> str:
        return f"ns-labels:{namespace}"

    def get_labels(self, namespace: str) -> dict[str, str] | None:
        val_bytes = self._client.get(self._key(namespace))
        if val_bytes is None:
            return None

        value = json.loads(val_bytes)
        if not isinstance(value, dict):
            return None
        return {str(k): str(v) for k, v in value.items()}

    def set_labels(
        self, namespace: str, labels: dict[str, str], ttl_seconds: int | None = None
    ) -> None:
        val_str = json.dumps(labels, separators=(",", ":"), sort_keys=True)
        ttl = (
            self._default_ttl_seconds
            if not ttl_seconds or ttl_seconds <= 0
            else int(ttl_seconds)
        )
        self._client.setex(self._key(namespace), ttl, val_str)

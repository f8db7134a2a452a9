import logging
from typing import Any

from kubernetes.client.rest import ApiException

from .config import Settings
from .errors import NamespaceLookupError
from .store.interface import NamespaceLabelCache

log = logging.getLogger("pod-webhook")


class NamespaceReader:
    """
    Resolve namespace labels through the Kubernetes API.

    When a cache is configured, fresh cached labels are used instead of a
    lookup. Cache failures are treated as misses; API failures are fatal for
    the request since the namespace selector cannot be evaluated without them.
    """

    def __init__(
        self, core: Any, settings: Settings, cache: NamespaceLabelCache | None = None
    ) -> None:
        self.core = core
        self.settings = settings
        self.cache = cache

    def _cached(self, name: str) -> dict[str, str] | None:
        if self.cache is None:
            return None
        try:
            labels = self.cache.get_labels(name)
        except Exception as e:
            log.warning("Namespace label cache read failed for %s: %s", name, e)
            return None
        if labels is not None:
            log.debug("Loaded labels for namespace=%s from cache", name)
        return labels

    def _store(self, name: str, labels: dict[str, str]) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set_labels(
                name, labels, ttl_seconds=self.settings.namespace_cache_ttl_seconds
            )
        except Exception as e:
            log.warning("Namespace label cache write failed for %s: %s", name, e)

    def labels(self, name: str) -> dict[str, str]:
        cached = self._cached(name)
        if cached is not None:
            return cached

        try:
            ns = self.core.read_namespace(
                name, _request_timeout=self.settings.webhook_timeout_seconds
            )
        except ApiException as e:
            raise NamespaceLookupError(
                f"namespace {name!r}: {e.status} {e.reason}"
            ) from e
        except Exception as e:
            raise NamespaceLookupError(f"namespace {name!r}: {e}") from e

        metadata = getattr(ns, "metadata", None)
        labels = dict(getattr(metadata, "labels", None) or {})
        log.debug("Found pod namespace %s", name)
        self._store(name, labels)
        return labels

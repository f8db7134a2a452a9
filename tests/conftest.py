from types import SimpleNamespace
from typing import Any, Dict

import pytest
from kubernetes.client.rest import ApiException

from kueue_pod_webhook.config import Settings
from kueue_pod_webhook.namespaces import NamespaceReader
from kueue_pod_webhook.store.interface import NamespaceLabelCache
from kueue_pod_webhook.webhook import PodWebhook


class FakeCoreV1Api:
	"""Stand-in for kubernetes.client.CoreV1Api serving namespaces from a dict."""

	def __init__(self, namespaces: Dict[str, Dict[str, str]]):
		self.namespaces = namespaces
		self.calls = 0

	def read_namespace(self, name, _request_timeout=None):
		self.calls += 1
		if name not in self.namespaces:
			raise ApiException(status=404, reason="Not Found")
		return SimpleNamespace(
			metadata=SimpleNamespace(name=name, labels=dict(self.namespaces[name]))
		)


class InMemoryLabelCache(NamespaceLabelCache):
	def __init__(self):
		self.data: Dict[str, Dict[str, str]] = {}
		self.ttls: Dict[str, Any] = {}

	def get_labels(self, namespace):
		return self.data.get(namespace)

	def set_labels(self, namespace, labels, ttl_seconds=None):
		self.data[namespace] = dict(labels)
		self.ttls[namespace] = ttl_seconds


@pytest.fixture
def core():
	return FakeCoreV1Api(
		{
			"default": {"kubernetes.io/metadata.name": "default"},
			"kube-system": {"kubernetes.io/metadata.name": "kube-system"},
		}
	)


@pytest.fixture
def make_webhook(core):
	def _make(cache=None, **overrides) -> PodWebhook:
		settings = Settings(**overrides)
		return PodWebhook(NamespaceReader(core, settings, cache), settings)

	return _make


def make_pod(name="p1", ns="default", labels=None, annotations=None, spec=None) -> Dict[str, Any]:
	return {
		"apiVersion": "v1",
		"kind": "Pod",
		"metadata": {
			"name": name,
			"namespace": ns,
			"labels": labels if labels is not None else {"team": "x"},
			"annotations": annotations or {},
		},
		"spec": spec
		or {
			"containers": [
				{
					"name": "main",
					"image": "busybox:1.36",
					"resources": {"requests": {"cpu": "1"}},
				}
			],
		},
	}

import copy

import pytest

from kueue_pod_webhook.errors import (
	ErrorType,
	NamespaceLookupError,
	RoleHashError,
	SelectorError,
)

from conftest import InMemoryLabelCache, make_pod

GATE = {"name": "kueue.x-k8s.io/admission"}
QUEUE = "kueue.x-k8s.io/queue-name"
GROUP = "kueue.x-k8s.io/pod-group-name"
COUNT = "kueue.x-k8s.io/pod-group-total-count"
ROLE_HASH = "kueue.x-k8s.io/role-hash"


def assert_unmutated(pod):
	assert "finalizers" not in pod["metadata"]
	assert "kueue.x-k8s.io/managed" not in pod["metadata"]["labels"]
	assert "schedulingGates" not in pod["spec"]
	assert ROLE_HASH not in pod["metadata"]["annotations"]


# Default


def test_default_without_queue_name_and_flag_off_is_noop(make_webhook):
	wh = make_webhook(manage_jobs_without_queue_name=False)
	pod = make_pod()
	before = copy.deepcopy(pod)
	wh.default(pod)
	assert pod == before


def test_default_without_queue_name_and_flag_on_gates_pod(make_webhook):
	wh = make_webhook(manage_jobs_without_queue_name=True)
	pod = make_pod()
	wh.default(pod)
	assert pod["metadata"]["finalizers"] == ["kueue.x-k8s.io/managed"]
	assert pod["metadata"]["labels"]["kueue.x-k8s.io/managed"] == "true"
	assert pod["metadata"]["labels"]["team"] == "x"
	assert pod["spec"]["schedulingGates"] == [GATE]
	assert ROLE_HASH not in pod["metadata"]["annotations"]


def test_default_with_queue_name_gates_pod(make_webhook):
	wh = make_webhook()
	pod = make_pod(labels={QUEUE: "user-queue"})
	wh.default(pod)
	assert pod["metadata"]["labels"]["kueue.x-k8s.io/managed"] == "true"
	assert pod["spec"]["schedulingGates"] == [GATE]


def test_default_creates_missing_maps(make_webhook):
	wh = make_webhook(manage_jobs_without_queue_name=True)
	pod = {"metadata": {"name": "bare", "namespace": "default"}, "spec": {}}
	wh.default(pod)
	assert pod["metadata"]["labels"] == {"kueue.x-k8s.io/managed": "true"}
	assert pod["spec"]["schedulingGates"] == [GATE]


def test_default_appends_gate_after_existing_gates(make_webhook):
	wh = make_webhook(manage_jobs_without_queue_name=True)
	pod = make_pod()
	pod["spec"]["schedulingGates"] = [{"name": "example.com/other"}]
	wh.default(pod)
	assert pod["spec"]["schedulingGates"] == [{"name": "example.com/other"}, GATE]


def test_default_is_idempotent(make_webhook):
	wh = make_webhook()
	pod = make_pod(labels={QUEUE: "q", GROUP: "grp1"}, annotations={COUNT: "2"})
	wh.default(pod)
	once = copy.deepcopy(pod)
	wh.default(pod)
	assert pod == once
	assert pod["metadata"]["finalizers"].count("kueue.x-k8s.io/managed") == 1
	assert pod["spec"]["schedulingGates"].count(GATE) == 1


def test_default_writes_role_hash_for_group_pods(make_webhook):
	wh = make_webhook()
	a = make_pod(name="a", labels={QUEUE: "q", GROUP: "grp1"}, annotations={COUNT: "2"})
	b = make_pod(name="b", labels={QUEUE: "q", GROUP: "grp1"}, annotations={COUNT: "2"})
	wh.default(a)
	wh.default(b)
	h = a["metadata"]["annotations"][ROLE_HASH]
	assert len(h) == 8
	assert h == b["metadata"]["annotations"][ROLE_HASH]


def test_default_skips_pods_with_managed_owner(make_webhook, core):
	wh = make_webhook(manage_jobs_without_queue_name=True)
	pod = make_pod(labels={QUEUE: "q"})
	pod["metadata"]["ownerReferences"] = [
		{"apiVersion": "batch/v1", "kind": "Job", "name": "j", "uid": "1", "controller": True}
	]
	before = copy.deepcopy(pod)
	wh.default(pod)
	assert pod == before
	assert core.calls == 0


def test_default_pod_selector_mismatch_never_mutates(make_webhook, core):
	wh = make_webhook(
		manage_jobs_without_queue_name=True,
		pod_selector={"matchLabels": {"team": "y"}},
	)
	pod = make_pod(labels={"team": "x", QUEUE: "q", GROUP: "g"}, annotations={COUNT: "1"})
	wh.default(pod)
	assert_unmutated(pod)
	assert core.calls == 0


def test_default_none_pod_selector_matches_nothing(make_webhook):
	wh = make_webhook(manage_jobs_without_queue_name=True, pod_selector=None)
	pod = make_pod(labels={QUEUE: "q"})
	wh.default(pod)
	assert_unmutated(pod)


def test_default_namespace_selector_mismatch_is_noop(make_webhook):
	wh = make_webhook(manage_jobs_without_queue_name=True)
	pod = make_pod(ns="kube-system", labels={QUEUE: "q"})
	wh.default(pod)
	assert_unmutated(pod)


def test_default_missing_namespace_is_fatal(make_webhook):
	wh = make_webhook(manage_jobs_without_queue_name=True)
	pod = make_pod(ns="missing")
	before = copy.deepcopy(pod)
	with pytest.raises(NamespaceLookupError) as exc:
		wh.default(pod)
	assert "error while getting namespace" in str(exc.value)
	assert pod == before


@pytest.mark.parametrize("field", ["pod_selector", "namespace_selector"])
def test_default_malformed_selector_is_fatal(make_webhook, field):
	bad = {"matchExpressions": [{"key": "a", "operator": "Bogus", "values": ["1"]}]}
	wh = make_webhook(manage_jobs_without_queue_name=True, **{field: bad})
	pod = make_pod()
	before = copy.deepcopy(pod)
	with pytest.raises(SelectorError) as exc:
		wh.default(pod)
	assert "failed to parse" in str(exc.value)
	assert pod == before


def test_default_hash_failure_leaves_object_untouched(make_webhook):
	wh = make_webhook()
	pod = make_pod(labels={QUEUE: "q", GROUP: "grp1"}, annotations={COUNT: "2"})
	pod["spec"]["priority"] = float("inf")
	before = copy.deepcopy(pod)
	with pytest.raises(RoleHashError):
		wh.default(pod)
	assert "finalizers" not in pod["metadata"]
	assert pod["metadata"]["labels"] == before["metadata"]["labels"]


def test_default_uses_namespace_cache(make_webhook, core):
	cache = InMemoryLabelCache()
	wh = make_webhook(cache=cache, manage_jobs_without_queue_name=True)
	wh.default(make_pod(name="a"))
	wh.default(make_pod(name="b"))
	assert core.calls == 1
	assert cache.data["default"] == {"kubernetes.io/metadata.name": "default"}
	assert cache.ttls["default"] == 30


def test_default_cache_failure_falls_back_to_api(make_webhook, core):
	class BrokenCache(InMemoryLabelCache):
		def get_labels(self, namespace):
			raise ConnectionError("redis down")

		def set_labels(self, namespace, labels, ttl_seconds=None):
			raise ConnectionError("redis down")

	wh = make_webhook(cache=BrokenCache(), manage_jobs_without_queue_name=True)
	pod = make_pod()
	wh.default(pod)
	assert core.calls == 1
	assert pod["spec"]["schedulingGates"] == [GATE]


# Validate


def test_validate_create_group_name_without_count(make_webhook):
	wh = make_webhook()
	warnings, err = wh.validate_create(make_pod(labels={"team": "x", GROUP: "grp1"}))
	assert warnings is None
	assert err is not None
	assert len(err.errors) == 1
	assert err.errors[0].type is ErrorType.REQUIRED
	assert err.errors[0].field == "metadata.annotations[kueue.x-k8s.io/pod-group-total-count]"


def test_validate_create_valid_pod(make_webhook):
	wh = make_webhook()
	warnings, err = wh.validate_create(
		make_pod(labels={QUEUE: "q", GROUP: "grp1"}, annotations={COUNT: "3"})
	)
	assert warnings is None
	assert err is None


def test_validate_create_collects_every_error(make_webhook):
	wh = make_webhook()
	pod = make_pod(
		labels={QUEUE: "Bad_Queue", "kueue.x-k8s.io/managed": "yes"},
		annotations={COUNT: "zero"},
	)
	_, err = wh.validate_create(pod)
	assert [e.type for e in err.errors] == [
		ErrorType.INVALID,
		ErrorType.FORBIDDEN,
		ErrorType.REQUIRED,
		ErrorType.INVALID,
	]


def test_validate_create_warns_on_managed_label_with_managed_owner(make_webhook):
	wh = make_webhook()
	pod = make_pod(labels={"kueue.x-k8s.io/managed": "true"})
	pod["metadata"]["ownerReferences"] = [
		{"apiVersion": "kubeflow.org/v1", "kind": "PyTorchJob", "name": "t", "uid": "1", "controller": True}
	]
	warnings, err = wh.validate_create(pod)
	assert err is None
	assert warnings == [
		"pod owner is managed by kueue, label 'kueue.x-k8s.io/managed=true' might lead to unexpected behaviour"
	]


def test_validate_update_group_name_immutable(make_webhook):
	wh = make_webhook()
	old = make_pod(labels={GROUP: "grp1"}, annotations={COUNT: "2"})
	new = make_pod(labels={GROUP: "grp2"}, annotations={COUNT: "2"})
	_, err = wh.validate_update(old, new)
	assert err is not None
	assert len(err.errors) == 1
	assert err.errors[0].field == "metadata.labels[kueue.x-k8s.io/pod-group-name]"
	assert err.errors[0].detail == "field is immutable"


def test_validate_update_unchanged_group_passes(make_webhook):
	wh = make_webhook()
	old = make_pod(labels={GROUP: "grp1"}, annotations={COUNT: "2"})
	new = copy.deepcopy(old)
	new["metadata"]["labels"]["extra"] = "1"
	assert wh.validate_update(old, new) == (None, None)
	assert wh.validate_update(make_pod(), make_pod()) == (None, None)


def test_validate_update_does_not_check_role_hash(make_webhook):
	wh = make_webhook()
	old = make_pod(labels={GROUP: "grp1"}, annotations={COUNT: "2", ROLE_HASH: "deadbeef"})
	new = copy.deepcopy(old)
	new["spec"]["containers"][0]["image"] = "busybox:1.37"
	assert wh.validate_update(old, new) == (None, None)


def test_validate_delete_always_allowed(make_webhook):
	wh = make_webhook()
	assert wh.validate_delete(make_pod(labels={"kueue.x-k8s.io/managed": "no"})) == (None, None)


# Redis cache


def test_redis_cache_stores_labels_with_ttl(monkeypatch: pytest.MonkeyPatch):
	import redis

	from kueue_pod_webhook.store.redis_store import RedisNamespaceLabelCache

	class FakeRedis:
		def __init__(self):
			self.values = {}
			self.ttls = {}

		def get(self, key):
			return self.values.get(key)

		def setex(self, key, ttl, value):
			self.values[key] = value.encode()
			self.ttls[key] = ttl

	fake = FakeRedis()
	monkeypatch.setattr(redis.Redis, "from_url", lambda url, **kwargs: fake)

	cache = RedisNamespaceLabelCache("redis://localhost:6379/0", default_ttl_seconds=30)
	assert cache.get_labels("default") is None
	cache.set_labels("default", {"env": "prod"}, ttl_seconds=0)
	assert fake.ttls["ns-labels:default"] == 30
	cache.set_labels("team-a", {"env": "dev"}, ttl_seconds=5)
	assert fake.ttls["ns-labels:team-a"] == 5
	assert cache.get_labels("default") == {"env": "prod"}


def test_redis_cache_client_is_bounded_by_webhook_timeout(monkeypatch: pytest.MonkeyPatch):
	import redis

	from kueue_pod_webhook.store.redis_store import RedisNamespaceLabelCache

	captured = {}

	def from_url(url, **kwargs):
		captured["url"] = url
		captured.update(kwargs)
		return object()

	monkeypatch.setattr(redis.Redis, "from_url", from_url)

	RedisNamespaceLabelCache("redis://cache:6379/0", default_ttl_seconds=30, timeout_seconds=3)
	assert captured["url"] == "redis://cache:6379/0"
	assert captured["socket_timeout"] == 3
	assert captured["socket_connect_timeout"] == 3


# Managed-status decision


def test_should_manage_looks_up_namespace_only_after_pod_checks():
	from kueue_pod_webhook.helpers import should_manage
	from kueue_pod_webhook.models import Pod

	calls = []

	def namespace_labels():
		calls.append(1)
		return {"kubernetes.io/metadata.name": "default"}

	pod = Pod(make_pod(labels={"team": "x"}))
	assert should_manage(pod, namespace_labels, {"matchLabels": {"team": "y"}}, {}, "q", False) is False
	assert calls == []

	assert should_manage(pod, namespace_labels, {}, {}, "q", False) is True
	assert calls == [1]

	assert should_manage(pod, namespace_labels, {}, {}, "", False) is False
	assert should_manage(pod, namespace_labels, {}, {}, "", True) is True


def test_default_reads_namespace_once(make_webhook, core):
	wh = make_webhook(manage_jobs_without_queue_name=True)
	wh.default(make_pod())
	assert core.calls == 1

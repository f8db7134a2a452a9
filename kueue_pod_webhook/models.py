"""
Minimal models for Kubernetes AdmissionReview and Pod used by this webhook.
We intentionally read only the fields we need and keep the rest of the object
as-is so that new Kubernetes fields survive a mutation untouched.

References:
- AdmissionReview request/response shape:
  https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#request-and-response
- Pod (core/v1) API reference:
  https://kubernetes.io/docs/reference/generated/kubernetes-api/latest/#pod-v1-core
"""

import copy
import re
from dataclasses import dataclass
from typing import Any, Optional

MANAGED_LABEL_KEY = "kueue.x-k8s.io/managed"
MANAGED_LABEL_VALUE = "true"
POD_FINALIZER = MANAGED_LABEL_KEY
QUEUE_NAME_KEY = "kueue.x-k8s.io/queue-name"
GROUP_NAME_LABEL = "kueue.x-k8s.io/pod-group-name"
GROUP_TOTAL_COUNT_ANNOTATION = "kueue.x-k8s.io/pod-group-total-count"
ROLE_HASH_ANNOTATION = "kueue.x-k8s.io/role-hash"
SCHEDULING_GATE_NAME = "kueue.x-k8s.io/admission"
KUEUE_PREFIX = "kueue.x-k8s.io/"

_INT_RE = re.compile(r"^[+-]?[0-9]+$")


def _get(d: dict[str, Any], key: str, default):
    # Safe nested getter for dicts
    v = d.get(key)
    return v if isinstance(v, type(default)) else default


class Pod:
    """
    Typed view over a private working copy of a decoded Pod.

    The caller's object is never touched until copy_into() is called.
    """

    def __init__(self, obj: dict[str, Any]) -> None:
        self.obj = obj

    @staticmethod
    def from_object(obj: dict[str, Any] | None) -> "Pod":
        return Pod(copy.deepcopy(obj) if isinstance(obj, dict) else {})

    @property
    def metadata(self) -> dict[str, Any]:
        return _get(self.obj, "metadata", {})

    @property
    def spec(self) -> dict[str, Any]:
        return _get(self.obj, "spec", {})

    @property
    def name(self) -> str:
        return _get(self.metadata, "name", "")

    @property
    def namespace(self) -> str:
        return _get(self.metadata, "namespace", "")

    @property
    def labels(self) -> dict[str, str]:
        return _get(self.metadata, "labels", {})

    @property
    def annotations(self) -> dict[str, str]:
        return _get(self.metadata, "annotations", {})

    @property
    def owner_references(self) -> list[dict[str, Any]]:
        return _get(self.metadata, "ownerReferences", [])

    @property
    def scheduling_gates(self) -> list[dict[str, Any]]:
        return _get(self.spec, "schedulingGates", [])

    def group_name(self) -> str:
        return self.labels.get(GROUP_NAME_LABEL, "")

    def group_total_count(self) -> int:
        """
        Parse the group total count annotation.
        Raises ValueError if it is missing, not an integer, or lower than 1.
        """
        raw = self.annotations.get(GROUP_TOTAL_COUNT_ANNOTATION)
        if raw is None:
            raise ValueError(
                f"failed to extract group total count: annotation {GROUP_TOTAL_COUNT_ANNOTATION} not found"
            )
        if not isinstance(raw, str) or not _INT_RE.match(raw):
            raise ValueError(f'parsing "{raw}": invalid syntax')
        count = int(raw)
        if count < 1:
            raise ValueError("group total count should be greater than 0")
        return count

    def gate_index(self, gate_name: str = SCHEDULING_GATE_NAME) -> int:
        for i, gate in enumerate(self.scheduling_gates):
            if isinstance(gate, dict) and gate.get("name") == gate_name:
                return i
        return -1

    # Mutators: each lazily creates the container it writes to.

    def _ensure(self, parent: dict[str, Any], key: str, default):
        if not isinstance(parent.get(key), type(default)):
            parent[key] = default
        return parent[key]

    def _meta(self) -> dict[str, Any]:
        return self._ensure(self.obj, "metadata", {})

    def add_finalizer(self, finalizer: str) -> bool:
        finalizers = self._ensure(self._meta(), "finalizers", [])
        if finalizer in finalizers:
            return False
        finalizers.append(finalizer)
        return True

    def set_label(self, key: str, value: str) -> None:
        self._ensure(self._meta(), "labels", {})[key] = value

    def set_annotation(self, key: str, value: str) -> None:
        self._ensure(self._meta(), "annotations", {})[key] = value

    def add_scheduling_gate(self, gate_name: str = SCHEDULING_GATE_NAME) -> bool:
        if self.gate_index(gate_name) != -1:
            return False
        spec = self._ensure(self.obj, "spec", {})
        self._ensure(spec, "schedulingGates", []).append({"name": gate_name})
        return True

    def copy_into(self, target: dict[str, Any]) -> None:
        """Replace target's content with the working copy, in place."""
        target.clear()
        target.update(copy.deepcopy(self.obj))


@dataclass
class AdmissionRequestModel:
    uid: str
    kind: str
    operation: str
    obj: dict[str, Any]
    old_obj: dict[str, Any] | None

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionRequestModel"]:
        if not isinstance(d, dict):
            return None
        uid = str(d.get("uid", ""))
        op = str(d.get("operation", "CREATE"))
        kind_raw = d.get("kind")
        kind = str(kind_raw.get("kind", "")) if isinstance(kind_raw, dict) else ""
        obj_raw = d.get("object")
        if not isinstance(obj_raw, dict):
            obj_raw = {}
        old_raw = d.get("oldObject")
        if not isinstance(old_raw, dict):
            old_raw = None
        return AdmissionRequestModel(
            uid=uid,
            kind=kind or str(obj_raw.get("kind", "Pod")),
            operation=op,
            obj=obj_raw,
            old_obj=old_raw,
        )


@dataclass
class AdmissionReviewModel:
    request: AdmissionRequestModel

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionReviewModel"]:
        if not isinstance(d, dict):
            return None
        req_raw = d.get("request")
        req = (
            AdmissionRequestModel.from_dict(req_raw)
            if isinstance(req_raw, dict)
            else None
        )
        if req is None:
            return None
        return AdmissionReviewModel(request=req)

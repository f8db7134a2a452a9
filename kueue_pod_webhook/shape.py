"""
Role identity of a pod within a pod group.

Pods that play the same role in a group (same images, requests, placement
constraints, ...) get the same short hash, stored in the role-hash annotation.
Fields that legitimately vary between replicas of a role, such as Kueue's own
labels, container commands and volume names, are left out of the shape.
"""

import hashlib
import json
from dataclasses import asdict, dataclass, field
from typing import Any

from .errors import RoleHashError
from .models import KUEUE_PREFIX, Pod

ROLE_HASH_LENGTH = 8


@dataclass
class ContainerShape:
    image: str
    resources: dict[str, Any]
    ports: list[Any]


@dataclass
class MetadataShape:
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class SpecShape:
    initContainers: list[ContainerShape] = field(default_factory=list)
    containers: list[ContainerShape] = field(default_factory=list)
    nodeSelector: dict[str, str] = field(default_factory=dict)
    affinity: dict[str, Any] = field(default_factory=dict)
    tolerations: list[Any] = field(default_factory=list)
    runtimeClassName: str | None = None
    priority: int | None = None
    preemptionPolicy: str | None = None
    topologySpreadConstraints: list[Any] = field(default_factory=list)
    overhead: dict[str, Any] = field(default_factory=dict)
    volumes: list[dict[str, Any]] = field(default_factory=list)
    resourceClaims: list[Any] = field(default_factory=list)


@dataclass
class PodShape:
    metadata: MetadataShape
    spec: SpecShape


def _as_dict(v: Any) -> dict:
    return v if isinstance(v, dict) else {}


def _as_list(v: Any) -> list:
    return v if isinstance(v, list) else []


def _sorted(value: Any) -> Any:
    # Free-form API objects: fix key order so equal objects serialize equally.
    if isinstance(value, dict):
        return {k: _sorted(value[k]) for k in sorted(value)}
    if isinstance(value, list):
        return [_sorted(v) for v in value]
    return value


def omit_kueue_labels(labels: dict[str, str]) -> dict[str, str]:
    return {k: v for k, v in labels.items() if not k.startswith(KUEUE_PREFIX)}


def containers_shape(containers: list[Any]) -> list[ContainerShape]:
    result = []
    for c in containers:
        c = _as_dict(c)
        resources = _as_dict(c.get("resources"))
        result.append(
            ContainerShape(
                image=c.get("image") or "",
                resources={"requests": _sorted(_as_dict(resources.get("requests")))},
                ports=_sorted(_as_list(c.get("ports"))),
            )
        )
    return result


def volumes_shape(volumes: list[Any]) -> list[dict[str, Any]]:
    result = []
    for v in volumes:
        v = dict(_as_dict(v))
        v["name"] = ""
        result.append(_sorted(v))
    return result


def pod_shape(pod: Pod) -> PodShape:
    spec = pod.spec
    return PodShape(
        metadata=MetadataShape(labels=_sorted(omit_kueue_labels(pod.labels))),
        spec=SpecShape(
            initContainers=containers_shape(_as_list(spec.get("initContainers"))),
            containers=containers_shape(_as_list(spec.get("containers"))),
            nodeSelector=_sorted(_as_dict(spec.get("nodeSelector"))),
            affinity=_sorted(_as_dict(spec.get("affinity"))),
            tolerations=_sorted(_as_list(spec.get("tolerations"))),
            runtimeClassName=spec.get("runtimeClassName"),
            priority=spec.get("priority"),
            preemptionPolicy=spec.get("preemptionPolicy"),
            topologySpreadConstraints=_sorted(
                _as_list(spec.get("topologySpreadConstraints"))
            ),
            overhead=_sorted(_as_dict(spec.get("overhead"))),
            volumes=volumes_shape(_as_list(spec.get("volumes"))),
            resourceClaims=_sorted(_as_list(spec.get("resourceClaims"))),
        ),
    )


def serialize_shape(shape: PodShape) -> bytes:
    """
    Compact JSON of the shape. Field order comes from the dataclass
    definitions, so the output does not depend on how the pod was written.
    """
    try:
        return json.dumps(
            asdict(shape), separators=(",", ":"), allow_nan=False
        ).encode()
    except (TypeError, ValueError) as e:
        raise RoleHashError(f"failed to serialize pod shape: {e}") from e


def role_hash(shape: PodShape) -> str:
    digest = hashlib.sha256(serialize_shape(shape)).hexdigest()
    return digest[:ROLE_HASH_LENGTH]


def get_role_hash(pod: Pod) -> str:
    return role_hash(pod_shape(pod))

"""
Rules shared by every Kueue-integrated workload: queue name extraction and
validation, CRD-name validation of labels, and detection of pods whose
controlling owner is itself a Kueue-managed job.
"""

import re

from .errors import FieldError, Path, invalid, validate_immutable_field
from .models import QUEUE_NAME_KEY, Pod

LABELS_PATH = Path("metadata", "labels")
ANNOTATIONS_PATH = Path("metadata", "annotations")
QUEUE_NAME_LABEL_PATH = LABELS_PATH.key(QUEUE_NAME_KEY)
QUEUE_NAME_ANNOTATION_PATH = ANNOTATIONS_PATH.key(QUEUE_NAME_KEY)

DNS1123_SUBDOMAIN_MAX_LENGTH = 253
_DNS1123_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS1123_SUBDOMAIN_RE = re.compile(rf"^{_DNS1123_LABEL}(\.{_DNS1123_LABEL})*$")

# (apiVersion, kind) of owners whose pods Kueue already manages through the owner.
KUEUE_MANAGED_OWNERS = frozenset(
    {
        ("batch/v1", "Job"),
        ("jobset.x-k8s.io/v1alpha2", "JobSet"),
        ("kubeflow.org/v2beta1", "MPIJob"),
        ("kubeflow.org/v1", "MPIJob"),
        ("kubeflow.org/v1", "PyTorchJob"),
        ("kubeflow.org/v1", "TFJob"),
        ("kubeflow.org/v1", "XGBoostJob"),
        ("kubeflow.org/v1", "PaddleJob"),
        ("kubeflow.org/v1", "MXJob"),
        ("ray.io/v1", "RayJob"),
        ("ray.io/v1", "RayCluster"),
        ("ray.io/v1alpha1", "RayJob"),
        ("ray.io/v1alpha1", "RayCluster"),
    }
)


def is_dns1123_subdomain(value: str) -> list[str]:
    """Return the list of violations, empty if value is valid."""
    errs = []
    if len(value) > DNS1123_SUBDOMAIN_MAX_LENGTH:
        errs.append(f"must be no more than {DNS1123_SUBDOMAIN_MAX_LENGTH} characters")
    if not _DNS1123_SUBDOMAIN_RE.match(value):
        errs.append(
            "a lowercase RFC 1123 subdomain must consist of lower case alphanumeric "
            "characters, '-' or '.', and must start and end with an alphanumeric character"
        )
    return errs


def _validate_crd_name(value: str, path: Path) -> list[FieldError]:
    errs = is_dns1123_subdomain(value)
    if not errs:
        return []
    return [invalid(path, value, ",".join(errs))]


def queue_name(pod: Pod) -> str:
    """Queue requested by the pod; label wins over annotation, '' if none."""
    name = pod.labels.get(QUEUE_NAME_KEY)
    if name:
        return name
    return pod.annotations.get(QUEUE_NAME_KEY, "")


def validate_label_as_crd_name(pod: Pod, label_key: str) -> list[FieldError]:
    if label_key not in pod.labels:
        return []
    return _validate_crd_name(pod.labels[label_key], LABELS_PATH.key(label_key))


def validate_create_for_queue_name(pod: Pod) -> list[FieldError]:
    errs = validate_label_as_crd_name(pod, QUEUE_NAME_KEY)
    if QUEUE_NAME_KEY in pod.annotations:
        errs.extend(
            _validate_crd_name(pod.annotations[QUEUE_NAME_KEY], QUEUE_NAME_ANNOTATION_PATH)
        )
    return errs


def is_suspended(pod: Pod) -> bool:
    # A pod waits for admission as long as it carries the scheduling gate.
    return pod.gate_index() != -1


def validate_update_for_queue_name(old_pod: Pod, new_pod: Pod) -> list[FieldError]:
    errs = validate_create_for_queue_name(new_pod)
    if not is_suspended(new_pod):
        errs.extend(
            validate_immutable_field(
                queue_name(new_pod), queue_name(old_pod), QUEUE_NAME_LABEL_PATH
            )
        )
    return errs


def is_pod_owner_managed_by_kueue(pod: Pod) -> bool:
    for ref in pod.owner_references:
        if not isinstance(ref, dict) or not ref.get("controller"):
            continue
        return (ref.get("apiVersion"), ref.get("kind")) in KUEUE_MANAGED_OWNERS
    return False

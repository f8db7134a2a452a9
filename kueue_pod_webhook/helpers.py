import base64
import json
from typing import Any, Callable

import jsonpatch

from .errors import FieldError, Path, SelectorError, forbidden, invalid, required
from .jobframework import (
    ANNOTATIONS_PATH,
    LABELS_PATH,
    is_pod_owner_managed_by_kueue,
    validate_label_as_crd_name,
)
from .models import (
    GROUP_NAME_LABEL,
    GROUP_TOTAL_COUNT_ANNOTATION,
    MANAGED_LABEL_KEY,
    MANAGED_LABEL_VALUE,
    Pod,
)
from .selectors import selector_matches

MANAGED_LABEL_PATH: Path = LABELS_PATH.key(MANAGED_LABEL_KEY)
GROUP_NAME_LABEL_PATH: Path = LABELS_PATH.key(GROUP_NAME_LABEL)
GROUP_TOTAL_COUNT_ANNOTATION_PATH: Path = ANNOTATIONS_PATH.key(GROUP_TOTAL_COUNT_ANNOTATION)

_PAIRING_DETAIL = (
    f"both the '{GROUP_TOTAL_COUNT_ANNOTATION}' annotation "
    f"and the '{GROUP_NAME_LABEL}' label should be set"
)


def labels_match(selector: dict[str, Any] | None, labels: dict[str, str], what: str) -> bool:
    try:
        return selector_matches(selector, labels)
    except SelectorError as e:
        raise SelectorError(f"failed to parse {what} selector: {e}") from e


def should_manage(
    pod: Pod,
    namespace_labels: Callable[[], dict[str, str]],
    pod_selector: dict[str, Any] | None,
    namespace_selector: dict[str, Any] | None,
    queue_name: str,
    manage_without_queue_name: bool,
) -> bool:
    """
    Decide whether the webhook takes the pod under Kueue management.

    namespace_labels is only called once the owner check and the pod selector
    passed. Raises SelectorError if either selector is malformed, and lets
    errors from namespace_labels propagate.
    """
    if is_pod_owner_managed_by_kueue(pod):
        return False
    if not labels_match(pod_selector, pod.labels, "pod"):
        return False
    if not labels_match(namespace_selector, namespace_labels(), "namespace"):
        return False
    return queue_name != "" or manage_without_queue_name


def validate_managed_label(pod: Pod) -> list[FieldError]:
    value = pod.labels.get(MANAGED_LABEL_KEY)
    if value is not None and value != MANAGED_LABEL_VALUE:
        return [
            forbidden(
                MANAGED_LABEL_PATH,
                f"managed label value can only be '{MANAGED_LABEL_VALUE}'",
            )
        ]
    return []


def warning_for_pod_managed_label(pod: Pod) -> str:
    """Warn about an explicit managed label on a pod whose owner Kueue already manages."""
    if pod.labels.get(MANAGED_LABEL_KEY) == MANAGED_LABEL_VALUE and is_pod_owner_managed_by_kueue(pod):
        return (
            f"pod owner is managed by kueue, label '{MANAGED_LABEL_KEY}={MANAGED_LABEL_VALUE}' "
            "might lead to unexpected behaviour"
        )
    return ""


def validate_pod_group_metadata(pod: Pod) -> list[FieldError]:
    """
    Check that the group name label and the group total count annotation are
    set together, that the name is a valid CRD name and that the count is a
    positive integer.
    """
    errs: list[FieldError] = []

    gtc = pod.annotations.get(GROUP_TOTAL_COUNT_ANNOTATION)

    if pod.group_name() == "":
        if gtc is not None:
            errs.append(required(GROUP_NAME_LABEL_PATH, _PAIRING_DETAIL))
    else:
        errs.extend(validate_label_as_crd_name(pod, GROUP_NAME_LABEL))
        if gtc is None:
            errs.append(required(GROUP_TOTAL_COUNT_ANNOTATION_PATH, _PAIRING_DETAIL))

    if gtc is not None:
        try:
            pod.group_total_count()
        except ValueError as e:
            errs.append(invalid(GROUP_TOTAL_COUNT_ANNOTATION_PATH, gtc, str(e)))

    return errs


def make_patch(original: dict[str, Any], mutated: dict[str, Any]) -> list[dict[str, Any]]:
    """JSONPatch turning the pod as submitted into the defaulted pod."""
    return jsonpatch.make_patch(original, mutated).patch


def make_admission_response(
    uid: str,
    allowed: bool = True,
    patch: list[dict[str, Any]] | None = None,
    warnings: list[str] | None = None,
    message: str | None = None,
    code: int | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Return the AdmissionReview the webhook sends to K8s for a Pod request."""
    resp: dict[str, Any] = {"uid": uid, "allowed": allowed}

    if patch:
        resp["patchType"] = "JSONPatch"
        resp["patch"] = base64.b64encode(json.dumps(patch).encode()).decode()

    if warnings:
        resp["warnings"] = list(warnings)

    if message is not None or code is not None:
        status: dict[str, Any] = {}
        if code is not None:
            status["code"] = code
        if reason is not None:
            status["reason"] = reason
        if message is not None:
            status["message"] = message
        resp["status"] = status

    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "response": resp,
    }

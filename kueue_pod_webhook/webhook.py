import logging
from typing import Any

from .config import Settings
from .errors import (
    AggregateError,
    NamespaceLookupError,
    to_aggregate,
    validate_immutable_field,
)
from .helpers import (
    GROUP_NAME_LABEL_PATH,
    should_manage,
    validate_managed_label,
    validate_pod_group_metadata,
    warning_for_pod_managed_label,
)
from .jobframework import (
    queue_name,
    validate_create_for_queue_name,
    validate_update_for_queue_name,
)
from .models import (
    MANAGED_LABEL_KEY,
    MANAGED_LABEL_VALUE,
    POD_FINALIZER,
    ROLE_HASH_ANNOTATION,
    SCHEDULING_GATE_NAME,
    Pod,
)
from .namespaces import NamespaceReader
from .shape import get_role_hash

log = logging.getLogger("pod-webhook")


class PodWebhook:
    """Defaulting and validation of plain pods managed by Kueue."""

    def __init__(self, namespaces: NamespaceReader, settings: Settings) -> None:
        self.namespaces = namespaces
        self.manage_jobs_without_queue_name = settings.manage_jobs_without_queue_name
        self.pod_selector = settings.pod_selector
        self.namespace_selector = settings.namespace_selector

    def default(self, obj: dict[str, Any]) -> dict[str, Any]:
        """
        Gate the pod for Kueue admission if it is managed.

        Works on a private copy and writes it back into obj only once every
        step succeeded. Raises WebhookError subclasses on fatal errors, in
        which case obj is left untouched.
        """
        pod = Pod.from_object(obj)
        log.debug("Applying defaults for pod=%s/%s", pod.namespace, pod.name)

        def namespace_labels() -> dict[str, str]:
            try:
                return self.namespaces.labels(pod.namespace)
            except NamespaceLookupError as e:
                raise NamespaceLookupError(
                    f"failed to run mutating webhook on pod {pod.name}, "
                    f"error while getting namespace: {e}"
                ) from e

        if not should_manage(
            pod,
            namespace_labels,
            self.pod_selector,
            self.namespace_selector,
            queue_name(pod),
            self.manage_jobs_without_queue_name,
        ):
            log.debug("Pod=%s/%s is not managed by kueue", pod.namespace, pod.name)
            return obj

        pod.add_finalizer(POD_FINALIZER)
        pod.set_label(MANAGED_LABEL_KEY, MANAGED_LABEL_VALUE)

        if pod.add_scheduling_gate(SCHEDULING_GATE_NAME):
            log.debug("Adding gate to pod=%s/%s", pod.namespace, pod.name)

        if pod.group_name() != "":
            pod.set_annotation(ROLE_HASH_ANNOTATION, get_role_hash(pod))

        pod.copy_into(obj)
        return obj

    def validate_create(self, obj: dict[str, Any]) -> tuple[list[str] | None, AggregateError | None]:
        warnings: list[str] = []

        pod = Pod.from_object(obj)
        log.debug("Validating create for pod=%s/%s", pod.namespace, pod.name)
        errs = validate_create_for_queue_name(pod)

        errs.extend(validate_managed_label(pod))

        errs.extend(validate_pod_group_metadata(pod))

        warn = warning_for_pod_managed_label(pod)
        if warn:
            warnings.append(warn)

        return warnings or None, to_aggregate(errs)

    def validate_update(
        self, old_obj: dict[str, Any], new_obj: dict[str, Any]
    ) -> tuple[list[str] | None, AggregateError | None]:
        warnings: list[str] = []

        old_pod = Pod.from_object(old_obj)
        new_pod = Pod.from_object(new_obj)
        log.debug("Validating update for pod=%s/%s", new_pod.namespace, new_pod.name)
        errs = validate_update_for_queue_name(old_pod, new_pod)

        errs.extend(validate_managed_label(new_pod))

        errs.extend(
            validate_immutable_field(
                new_pod.group_name(), old_pod.group_name(), GROUP_NAME_LABEL_PATH
            )
        )

        errs.extend(validate_pod_group_metadata(new_pod))

        warn = warning_for_pod_managed_label(new_pod)
        if warn:
            warnings.append(warn)

        return warnings or None, to_aggregate(errs)

    def validate_delete(self, obj: dict[str, Any] | None = None) -> tuple[None, None]:
        return None, None

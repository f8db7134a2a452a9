import json
import os
from dataclasses import dataclass, field
from typing import Any

LabelSelector = dict[str, Any]


def _get_env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val is not None and val != "" else default


def _parse_int(name: str, default: int) -> int:
    val = _get_env(name, str(default))
    try:
        return int(val)
    except Exception:
        return default


def _parse_bool(name: str, default: bool) -> bool:
    val = _get_env(name, "true" if default else "false")
    return val.lower() in ("1", "true", "yes")


def _parse_selector(name: str, default: LabelSelector | None) -> LabelSelector | None:
    """
    Read a LabelSelector serialized as JSON. The literal ``null`` disables the
    selector (it then matches nothing); unparsable values fall back to default.
    Operators and keys are not checked here, malformed selectors fail the
    request that evaluates them.
    """
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        val = json.loads(raw)
    except Exception:
        return default
    if val is None or isinstance(val, dict):
        return val
    return default


def _default_namespace_selector() -> LabelSelector:
    return {
        "matchExpressions": [
            {
                "key": "kubernetes.io/metadata.name",
                "operator": "NotIn",
                "values": ["kube-system", "kueue-system"],
            }
        ]
    }


@dataclass(frozen=True)
class Settings:
    # Behavior
    manage_jobs_without_queue_name: bool = False
    pod_selector: LabelSelector | None = field(default_factory=dict)
    namespace_selector: LabelSelector | None = field(
        default_factory=_default_namespace_selector
    )
    webhook_timeout_seconds: int = 5
    redis_url: str = ""
    namespace_cache_ttl_seconds: int = 30
    app_env: str = "production"


def load() -> Settings:
    return Settings(
        manage_jobs_without_queue_name=_parse_bool(
            "MANAGE_JOBS_WITHOUT_QUEUE_NAME", False
        ),
        pod_selector=_parse_selector("POD_SELECTOR", {}),
        namespace_selector=_parse_selector(
            "POD_NAMESPACE_SELECTOR", _default_namespace_selector()
        ),
        webhook_timeout_seconds=_parse_int("WEBHOOK_TIMEOUT_SECONDS", 5),
        redis_url=_get_env("REDIS_URL", ""),
        namespace_cache_ttl_seconds=_parse_int("NAMESPACE_CACHE_TTL_SECONDS", 30),
        app_env=_get_env("APP_ENV", "production"),
    )


# Singleton settings for app usage (optional in tests)
settings: Settings = load()

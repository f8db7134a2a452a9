import logging
import os

from flask import Flask
from kubernetes import client, config

from .config import settings
from .namespaces import NamespaceReader
from .routes import create_routes
from .store.redis_store import RedisNamespaceLabelCache
from .webhook import PodWebhook

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("pod-webhook")

# Initialize Kubernetes client; avoid constructing real client in tests
if os.getenv("APP_ENV", getattr(settings, "app_env", "production")) == "test":
    core = object()
else:
    config.load_incluster_config()
    core = client.CoreV1Api()

app = Flask(__name__)
cache = None
if not getattr(settings, "redis_url", ""):
    log.info("REDIS_URL not set; namespace label cache disabled")
else:
    cache = RedisNamespaceLabelCache(
        settings.redis_url,
        getattr(settings, "namespace_cache_ttl_seconds", 30),
        timeout_seconds=getattr(settings, "webhook_timeout_seconds", 5),
    )

webhook = PodWebhook(NamespaceReader(core, settings, cache), settings)
bp = create_routes(webhook)
app.register_blueprint(bp)

if __name__ == "__main__":
    log.info("Starting webhook server...")
    app.run(
        host="0.0.0.0",
        port=int(os.getenv("PORT", "9443")),
        ssl_context=("tls/tls.crt", "tls/tls.key"),
    )

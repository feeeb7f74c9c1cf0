from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import setup_logging
from dinecore.core.config import settings
from dinecore.core.logging import configure_logging


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "dinecore",
    broker=_redis_url,
    backend=_redis_url,
    include=["dinecore.tasks.jobs"],
)

celery.conf.timezone = "UTC"
celery.conf.task_ignore_result = True


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

import requests

from dinecore.tasks.celery_app import celery
from dinecore.tasks import worker_jobs

@celery.task(
    name="dinecore.tasks.jobs.dispatch_notification",
    autoretry_for=(requests.RequestException,),
    retry_backoff=True,
    max_retries=5,
)
def dispatch_notification(event: str, payload: dict):
    return worker_jobs.deliver_notification(event, payload)

from celery import Celery
from celery.schedules import crontab

from deliverywatch.core.config import settings

app = Celery("deliverywatch", include=["deliverywatch.tasks.delivery_spikes"])
app.conf.broker_url = settings.CELERY_BROKER_URL
app.conf.result_backend = settings.CELERY_RESULT_BACKEND
app.conf.timezone = settings.CELERY_TIMEZONE
app.conf.enable_utc = False

app.conf.beat_schedule = {
    "compute-delivery-spike-counts": {
        "task": "deliverywatch.tasks.delivery_spikes.compute_delivery_spike_counts",
        "schedule": crontab(
            day_of_week="mon-fri",
            hour=settings.SPIKE_BATCH_HOUR,
            minute=settings.SPIKE_BATCH_MINUTE,
        ),
    },
}

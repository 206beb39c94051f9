import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'clubbilling.settings')

app = Celery('clubbilling')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

CHARGE_DISPATCH_QUEUE = 'charge_dispatch'
CHARGE_GENERATION_QUEUE = 'charge_generation'
WEBHOOK_QUEUE = 'webhooks'
MAINTENANCE_QUEUE = 'maintenance'

# Worker concurrency is fixed per queue at start-up:
#   celery -A clubbilling worker -Q charge_dispatch -c 1
#   celery -A clubbilling worker -Q charge_generation -c 5
#   celery -A clubbilling worker -Q webhooks -c 5
QUEUE_CONCURRENCY = {
    CHARGE_DISPATCH_QUEUE: 1,
    CHARGE_GENERATION_QUEUE: 5,
    WEBHOOK_QUEUE: 5,
}

app.conf.task_routes = {
    # Monthly fan-out, one job per cron tick
    'billing.tasks.dispatch_monthly_charges': {'queue': CHARGE_DISPATCH_QUEUE},

    # Per-tenant charge generation
    'billing.tasks.generate_tenant_charges': {'queue': CHARGE_GENERATION_QUEUE},

    # Gateway webhooks
    'billing.tasks.process_webhook_event_async': {'queue': WEBHOOK_QUEUE},

    'billing.tasks.cleanup_webhook_event_logs': {'queue': MAINTENANCE_QUEUE},

    # Default queue
    '*': {'queue': 'default'},
}

app.conf.task_default_queue = 'default'

app.conf.update(
    # Serialization settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone settings
    timezone='UTC',
    enable_utc=True,

    # Task execution settings
    task_track_started=True,
    task_time_limit=30 * 60,
    task_soft_time_limit=25 * 60,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Redelivery: a task is only acknowledged once it finished
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    task_queues={
        name: {'exchange': name, 'routing_key': name}
        for name in ('default', *QUEUE_CONCURRENCY, MAINTENANCE_QUEUE)
    },

    task_ignore_result=False,
    task_store_errors_even_if_ignored=True,
)

app.conf.task_annotations = {
    'billing.tasks.generate_tenant_charges': {
        'time_limit': 60 * 60,  # large clubs dispatch hundreds of gateway calls
        'soft_time_limit': 55 * 60,
    },
    'billing.tasks.process_webhook_event_async': {
        'time_limit': 120,
        'soft_time_limit': 100,
    },
}

# Celery Beat schedule configuration
app.conf.beat_schedule = {
    "billing_dispatch_monthly_charges": {
        "task": "billing.tasks.dispatch_monthly_charges",
        # 08:00 UTC on the 1st of every month
        "schedule": crontab(minute=0, hour=8, day_of_month=1),
        "options": {"queue": CHARGE_DISPATCH_QUEUE},
    },
    "billing_cleanup_webhook_logs_daily": {
        "task": "billing.tasks.cleanup_webhook_event_logs",
        "schedule": crontab(hour=4, minute=0),
        "options": {"queue": MAINTENANCE_QUEUE},
    },
}


@app.task(bind=True)
def health_check(self):
    """System health check task"""
    from django.db import connection

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")

        return {
            'status': 'healthy',
            'timestamp': app.now().isoformat(),
            'worker_id': self.request.id,
        }
    except Exception as e:
        return {
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': app.now().isoformat(),
        }

# scn/celery.py
import os
from celery import Celery

# Spécifie les settings Django à charger
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'scn.settings')

app = Celery('scn')

# Paramètres Django avec le namespace CELERY_*
app.config_from_object('django.conf:settings', namespace='CELERY')

# Découvre les tâches des apps (attestations/tasks.py)
app.autodiscover_tasks()

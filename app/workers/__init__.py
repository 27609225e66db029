"""
Workers module for background scheduled tasks.

- unified_scheduler: interval job scheduler with a bounded worker pool
- scheduled_tasks: task definitions (actuation.*, device.*)
"""

__all__ = [
    "UnifiedScheduler",
    "configure_scheduler",
    "register_all_tasks",
    "schedule_default_jobs",
]

from app.workers.unified_scheduler import UnifiedScheduler
from app.workers.scheduled_tasks import configure_scheduler, register_all_tasks, schedule_default_jobs

"""
Celery application setup for FitFlow.

Creates the Celery app used to run uploads on workers, wires logging and the
task lifecycle signal handlers.
"""

from celery import Celery
from celery.signals import (
    task_prerun,
    task_postrun,
    task_failure,
    worker_ready,
    worker_shutdown,
)

from fitflow.config import get_celery_config, get_settings
from fitflow.utils.logging import get_logger, setup_logging


logger = get_logger(__name__)


def create_celery_app() -> Celery:
    """
    Create and configure Celery application.

    Returns:
        Configured Celery application instance
    """
    config = get_celery_config()
    settings = get_settings()

    app = Celery("fitflow")
    app.conf.update(config)

    setup_logging(
        level="DEBUG" if settings.debug else settings.log_level,
        format_type=settings.log_format,
        log_file=settings.log_file,
    )

    _register_signal_handlers()

    logger.info("Celery application initialized")
    return app


def _register_signal_handlers() -> None:
    """Register Celery signal handlers for task lifecycle logging."""

    @task_prerun.connect
    def task_prerun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, **kwds):
        logger.info("Task started", task=task.name, task_id=task_id)

    @task_postrun.connect
    def task_postrun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None,
                             retval=None, state=None, **kwds):
        logger.info("Task completed", task=task.name, task_id=task_id, state=state)

    @task_failure.connect
    def task_failure_handler(sender=None, task_id=None, exception=None, traceback=None, einfo=None, **kwds):
        logger.error("Task failed", task=sender.name, task_id=task_id, error=str(exception))

    @worker_ready.connect
    def worker_ready_handler(sender=None, **kwds):
        logger.info("Worker ready", hostname=sender.hostname)

    @worker_shutdown.connect
    def worker_shutdown_handler(sender=None, **kwds):
        logger.info("Worker shutting down", hostname=sender.hostname)


celery_app = create_celery_app()

"""Outbound alerting for permanently failed jobs."""

from kmz_processor.lib.notifier.webhook import build_failure_payload, send_job_failure_notification

__all__ = ["build_failure_payload", "send_job_failure_notification"]

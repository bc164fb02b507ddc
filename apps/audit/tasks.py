import logging

from celery import shared_task
from django.db import DatabaseError, transaction

from apps.audit.models import AuditEntry

logger = logging.getLogger(__name__)


class AuditWriteFailed(Exception):
    pass


def write_audit_entry(payload):
    try:
        with transaction.atomic():
            return AuditEntry.objects.create(
                action_type=payload["action_type"],
                record_id=payload.get("record_id"),
                actor_id=payload["actor_id"],
                actor_name=payload["actor_name"],
                actor_email=payload.get("actor_email", ""),
                brand=payload.get("brand", ""),
                sku=payload.get("sku", ""),
                changes=payload.get("changes") or {},
            )
    except DatabaseError as exc:
        raise AuditWriteFailed(str(exc)) from exc


@shared_task(name="audit.persist_audit_entry", ignore_result=True)
def persist_audit_entry(payload):
    try:
        write_audit_entry(payload)
    except AuditWriteFailed as exc:
        logger.error(
            "Dropped %s audit entry for record %s: %s",
            payload.get("action_type"),
            payload.get("record_id"),
            exc,
        )

import logging
from decimal import Decimal
from functools import partial

from django.db import transaction

from apps.audit.models import AuditAction
from apps.audit.tasks import persist_audit_entry

logger = logging.getLogger(__name__)

TRACKED_FIELDS = ("brand", "sku", "inventory", "price")


def _json_value(value):
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return value


def product_snapshot(product):
    return {field: getattr(product, field) for field in TRACKED_FIELDS}


def compute_changes(before, after):
    return {
        field: {"from": _json_value(before.get(field)), "to": _json_value(after.get(field))}
        for field in TRACKED_FIELDS
        if before.get(field) != after.get(field)
    }


def build_audit_payload(action_type, product, actor, changes=None):
    action_type = AuditAction(action_type)
    return {
        "action_type": action_type.value,
        "record_id": str(product.pk) if product.pk else None,
        "actor_id": str(actor.pk),
        "actor_name": actor.display_name,
        "actor_email": actor.email or "",
        "brand": product.brand or "",
        "sku": product.sku or "",
        "changes": (changes or {}) if action_type == AuditAction.UPDATE else {},
    }


def _enqueue(payload):
    try:
        persist_audit_entry.delay(payload)
    except Exception:
        logger.exception(
            "Could not enqueue %s audit entry for record %s",
            payload["action_type"],
            payload["record_id"],
        )


def dispatch_audit(payload):
    """Hand the entry to the worker once the surrounding transaction commits.

    Never raises: the mutation that triggered the entry has already succeeded.
    """
    transaction.on_commit(partial(_enqueue, payload))


def record_audit(action_type, product, actor, changes=None):
    dispatch_audit(build_audit_payload(action_type, product, actor, changes=changes))

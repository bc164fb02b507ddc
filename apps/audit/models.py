import uuid

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone


class AuditAction(models.TextChoices):
    CREATE = "CREATE", "Create"
    UPDATE = "UPDATE", "Update"
    DELETE = "DELETE", "Delete"


class AuditEntry(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    timestamp = models.DateTimeField(default=timezone.now, editable=False)
    action_type = models.CharField(max_length=10, choices=AuditAction.choices)
    # Not a foreign key: the product may be gone by the time the entry is read.
    record_id = models.UUIDField(null=True, blank=True)
    actor_id = models.CharField(max_length=64)
    actor_name = models.CharField(max_length=255)
    actor_email = models.CharField(max_length=254, blank=True, default="")
    brand = models.CharField(max_length=120, blank=True, default="")
    sku = models.CharField(max_length=64, blank=True, default="")
    changes = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-timestamp", "-id"]
        indexes = [
            models.Index(fields=["-timestamp"], name="audit_timestamp_idx"),
            models.Index(fields=["actor_id", "-timestamp"], name="audit_actor_timestamp_idx"),
            models.Index(fields=["brand", "-timestamp"], name="audit_brand_timestamp_idx"),
            models.Index(fields=["action_type", "-timestamp"], name="audit_action_timestamp_idx"),
            models.Index(fields=["sku"], name="audit_sku_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("audit entries cannot be modified")
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.action_type} {self.sku or self.record_id} by {self.actor_name}"

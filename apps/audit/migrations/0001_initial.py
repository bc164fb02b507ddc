import uuid

import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AuditEntry",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("timestamp", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                (
                    "action_type",
                    models.CharField(
                        choices=[("CREATE", "Create"), ("UPDATE", "Update"), ("DELETE", "Delete")],
                        max_length=10,
                    ),
                ),
                ("record_id", models.UUIDField(blank=True, null=True)),
                ("actor_id", models.CharField(max_length=64)),
                ("actor_name", models.CharField(max_length=255)),
                ("actor_email", models.CharField(blank=True, default="", max_length=254)),
                ("brand", models.CharField(blank=True, default="", max_length=120)),
                ("sku", models.CharField(blank=True, default="", max_length=64)),
                ("changes", models.JSONField(blank=True, default=dict)),
            ],
            options={
                "ordering": ["-timestamp", "-id"],
                "indexes": [
                    models.Index(fields=["-timestamp"], name="audit_timestamp_idx"),
                    models.Index(fields=["actor_id", "-timestamp"], name="audit_actor_timestamp_idx"),
                    models.Index(fields=["brand", "-timestamp"], name="audit_brand_timestamp_idx"),
                    models.Index(fields=["action_type", "-timestamp"], name="audit_action_timestamp_idx"),
                    models.Index(fields=["sku"], name="audit_sku_idx"),
                ],
            },
        ),
    ]

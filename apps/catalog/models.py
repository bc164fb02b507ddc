import uuid

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q


METAFIELD_KEYS = (
    "case_material",
    "dial_color",
    "water_resistance",
    "warranty_period",
    "movement",
    "gender",
    "case_size",
)


def default_metafields():
    return {key: "" for key in METAFIELD_KEYS}


def normalize_text(value: str) -> str:
    return (value or "").strip()


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    brand = models.CharField(max_length=120, blank=True, default="", db_index=True)
    sku = models.CharField(max_length=64, blank=True, default="")
    category = models.CharField(max_length=120, blank=True, default="", db_index=True)
    description = models.TextField(blank=True, default="")
    inventory = models.PositiveIntegerField(default=0)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    metafields = models.JSONField(default=default_metafields)
    images = models.JSONField(default=list)
    created_by = models.ForeignKey(
        "accounts.User", null=True, blank=True, on_delete=models.SET_NULL, related_name="products"
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(fields=["sku"], condition=~Q(sku=""), name="unique_nonempty_product_sku"),
        ]

    def save(self, *args, **kwargs):
        self.brand = normalize_text(self.brand)
        self.sku = normalize_text(self.sku)
        self.category = normalize_text(self.category)
        self.description = normalize_text(self.description)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.sku or '-'} - {self.brand}"

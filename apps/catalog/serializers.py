from rest_framework import serializers

from apps.catalog.models import METAFIELD_KEYS, Product


class MetafieldsSerializer(serializers.Serializer):
    """camelCase on the wire, snake_case in ``Product.metafields``."""

    caseMaterial = serializers.CharField(source="case_material", required=False, allow_blank=True, default="")
    dialColor = serializers.CharField(source="dial_color", required=False, allow_blank=True, default="")
    waterResistance = serializers.CharField(source="water_resistance", required=False, allow_blank=True, default="")
    warrantyPeriod = serializers.CharField(source="warranty_period", required=False, allow_blank=True, default="")
    movement = serializers.CharField(required=False, allow_blank=True, default="")
    gender = serializers.CharField(required=False, allow_blank=True, default="")
    caseSize = serializers.CharField(source="case_size", required=False, allow_blank=True, default="")

    def to_internal_value(self, data):
        if isinstance(data, dict):
            unknown = sorted(set(data) - set(self.fields))
            if unknown:
                raise serializers.ValidationError({key: "Unknown metafield." for key in unknown})
        return super().to_internal_value(data)


class ProductImageSerializer(serializers.Serializer):
    url = serializers.CharField(max_length=500)
    altText = serializers.CharField(source="alt_text", max_length=255, required=False, allow_blank=True, default="")


class ProductSerializer(serializers.ModelSerializer):
    metafields = MetafieldsSerializer(required=False)
    images = ProductImageSerializer(many=True, required=False)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "brand",
            "sku",
            "category",
            "description",
            "inventory",
            "price",
            "metafields",
            "images",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = ["id", "createdAt", "updatedAt"]
        # sku uniqueness is left to the database constraint; see ProductViewSet._write.
        extra_kwargs = {"sku": {"validators": []}}
        validators = []

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # Standalone serializers so a partial update still renders every key.
        metafields = {**dict.fromkeys(METAFIELD_KEYS, ""), **(instance.metafields or {})}
        data["metafields"] = MetafieldsSerializer(metafields).data
        data["images"] = ProductImageSerializer(instance.images or [], many=True).data
        return data

    def update(self, instance, validated_data):
        metafields = validated_data.get("metafields")
        if metafields is not None and self.partial:
            validated_data["metafields"] = {**(instance.metafields or {}), **metafields}
        return super().update(instance, validated_data)

from __future__ import annotations

from rest_framework import serializers

from apps.orders.models import Order


class CreateOrderSerializer(serializers.Serializer):
    # Key names used by existing storefront clients; the snake_case name wins when both are sent.
    FIELD_ALIASES = {
        "productId": "product_code",
        "targetId": "target_id",
        "paymentMethodCode": "payment_method_code",
        "providerName": "provider_name",
    }

    product_code = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    target_id = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    payment_method_code = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    provider_name = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")

    def to_internal_value(self, data):
        if hasattr(data, "items"):
            normalized = {self.FIELD_ALIASES[key]: value for key, value in data.items() if key in self.FIELD_ALIASES}
            normalized.update({key: value for key, value in data.items() if key not in self.FIELD_ALIASES})
            data = normalized
        return super().to_internal_value(data)


class OrderSerializer(serializers.ModelSerializer):
    class Meta:
        model = Order
        fields = [
            "order_id",
            "status",
            "product_code",
            "product_name",
            "product_price",
            "provider_name",
            "product_img_url",
            "target_id",
            "payment_method_code",
            "payment_method_name",
            "admin_fee_payment_method",
            "admin_fee_global",
            "total_admin_fee",
            "total_amount_due",
            "atlantic_deposit_id",
            "deposit_reff_id",
            "deposit_details",
            "atlantic_transaction_id",
            "transaction_reff_id",
            "transaction_details",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

"""
Orders models.

EN: A prepaid-product purchase. Product, payment and fee fields are a snapshot
taken at creation time; only the reconciliation fields change afterwards.
"""

from django.db import models
from django.utils import timezone

from apps.orders.domain.state_machine import OrderStatus


class Order(models.Model):
    order_id = models.CharField(max_length=64, unique=True)

    product_code = models.CharField(max_length=64)
    product_name = models.CharField(max_length=255)
    product_price = models.DecimalField(max_digits=16, decimal_places=4)
    provider_name = models.CharField(max_length=128)
    product_img_url = models.CharField(max_length=500, blank=True, default="")

    target_id = models.CharField(max_length=128)
    payment_method_code = models.CharField(max_length=64)
    payment_method_name = models.CharField(max_length=255)

    admin_fee_payment_method = models.DecimalField(max_digits=16, decimal_places=4, default=0)
    admin_fee_global = models.DecimalField(max_digits=16, decimal_places=4, default=0)
    total_admin_fee = models.DecimalField(max_digits=16, decimal_places=4, default=0)
    total_amount_due = models.DecimalField(max_digits=14, decimal_places=0)

    status = models.CharField(max_length=64, default=OrderStatus.PENDING_PAYMENT.value, db_index=True)

    atlantic_deposit_id = models.CharField(max_length=128, blank=True, default="")
    deposit_reff_id = models.CharField(max_length=128, blank=True, default="")
    deposit_details = models.JSONField(default=dict, blank=True)

    atlantic_transaction_id = models.CharField(max_length=128, blank=True, default="")
    transaction_reff_id = models.CharField(max_length=128, blank=True, default="")
    transaction_details = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["status", "updated_at"], name="order_status_updated_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} ({self.status})"

    @property
    def has_transaction(self) -> bool:
        return bool(self.atlantic_transaction_id)

from django.contrib import admin

from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "order_id",
        "status",
        "product_code",
        "target_id",
        "payment_method_code",
        "total_amount_due",
        "created_at",
        "updated_at",
    )
    list_filter = ("status", "payment_method_code", "provider_name")
    search_fields = ("order_id", "deposit_reff_id", "transaction_reff_id", "atlantic_deposit_id", "target_id")
    ordering = ("-id",)

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

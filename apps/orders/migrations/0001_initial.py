import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("order_id", models.CharField(max_length=64, unique=True)),
                ("product_code", models.CharField(max_length=64)),
                ("product_name", models.CharField(max_length=255)),
                ("product_price", models.DecimalField(decimal_places=2, max_digits=14)),
                ("provider_name", models.CharField(max_length=128)),
                ("product_img_url", models.CharField(blank=True, default="", max_length=500)),
                ("target_id", models.CharField(max_length=128)),
                ("payment_method_code", models.CharField(max_length=64)),
                ("payment_method_name", models.CharField(max_length=255)),
                ("admin_fee_payment_method", models.DecimalField(decimal_places=4, default=0, max_digits=16)),
                ("admin_fee_global", models.DecimalField(decimal_places=4, default=0, max_digits=16)),
                ("total_admin_fee", models.DecimalField(decimal_places=4, default=0, max_digits=16)),
                ("total_amount_due", models.DecimalField(decimal_places=0, max_digits=14)),
                ("status", models.CharField(db_index=True, default="PENDING_PAYMENT", max_length=64)),
                ("atlantic_deposit_id", models.CharField(blank=True, default="", max_length=128)),
                ("deposit_reff_id", models.CharField(blank=True, default="", max_length=128)),
                ("deposit_details", models.JSONField(blank=True, default=dict)),
                ("atlantic_transaction_id", models.CharField(blank=True, default="", max_length=128)),
                ("transaction_reff_id", models.CharField(blank=True, default="", max_length=128)),
                ("transaction_details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status", "updated_at"], name="order_status_updated_idx"),
                ],
            },
        ),
    ]

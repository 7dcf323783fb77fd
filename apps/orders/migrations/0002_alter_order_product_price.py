from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="order",
            name="product_price",
            field=models.DecimalField(decimal_places=4, max_digits=16),
        ),
    ]

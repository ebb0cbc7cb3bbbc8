from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='PaymentOrder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('application_id', models.CharField(max_length=32)),
                ('merchant_order_id', models.CharField(max_length=64, unique=True)),
                ('gateway_order_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('amount', models.PositiveIntegerField()),
                ('status', models.CharField(choices=[('initiated', 'Initiated'), ('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed')], default='initiated', max_length=16)),
                ('gateway_response', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ('-created_at',),
                'indexes': [
                    models.Index(fields=['application_id', 'status'], name='payment_app_status_idx'),
                    models.Index(fields=['status', '-created_at'], name='payment_status_created_idx'),
                ],
            },
        ),
    ]

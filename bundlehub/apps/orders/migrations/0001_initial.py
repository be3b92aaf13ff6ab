from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('products', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('order_code', models.CharField(db_column='orderCode', max_length=40, unique=True)),
                ('customer_name', models.CharField(db_column='customerName', max_length=160)),
                ('customer_email', models.CharField(db_column='customerEmail', max_length=254)),
                ('customer_phone', models.CharField(db_column='customerPhone', max_length=32)),
                ('customer_address', models.CharField(blank=True, db_column='customerAddress', default='', max_length=255)),
                ('subtotal', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('total', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('payment_provider', models.CharField(blank=True, db_column='paymentProvider', max_length=30, null=True)),
                ('payment_reference', models.CharField(blank=True, db_column='paymentReference', max_length=120, null=True)),
                ('payment_status', models.CharField(choices=[('UNPAID', 'Unpaid'), ('PAID', 'Paid')], db_column='paymentStatus', default='UNPAID', max_length=10)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('PROCESSING', 'Processing'), ('COMPLETED', 'Completed')], default='PENDING', max_length=12)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_column='createdAt')),
                ('updated_at', models.DateTimeField(auto_now=True, db_column='updatedAt')),
                ('user', models.ForeignKey(blank=True, db_column='userId', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='orders', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'orders',
                'ordering': ('-created_at',),
                'indexes': [models.Index(fields=['payment_status', 'status'], name='orders_payment_2b1c1e_idx')],
            },
        ),
        migrations.CreateModel(
            name='OrderItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.PositiveIntegerField(default=1)),
                ('recipient_phone', models.CharField(blank=True, db_column='recipientPhone', max_length=32, null=True)),
                ('unit_price', models.DecimalField(db_column='unitPrice', decimal_places=2, max_digits=12)),
                ('line_total', models.DecimalField(db_column='lineTotal', decimal_places=2, max_digits=12)),
                ('fulfillment_provider', models.CharField(blank=True, choices=[('hubnet', 'Hubnet'), ('datahubnet', 'DataHubnet')], db_column='fulfillmentProvider', max_length=20, null=True)),
                ('hubnet_skip', models.BooleanField(db_column='hubnetSkip', default=False)),
                ('hubnet_status', models.CharField(blank=True, choices=[('PENDING', 'Pending'), ('SENDING', 'Sending'), ('SUBMITTED', 'Submitted'), ('DELIVERED', 'Delivered'), ('FAILED', 'Failed')], db_column='hubnetStatus', max_length=12, null=True)),
                ('hubnet_network', models.CharField(blank=True, db_column='hubnetNetwork', max_length=40, null=True)),
                ('hubnet_volume_mb', models.PositiveIntegerField(blank=True, db_column='hubnetVolumeMb', null=True)),
                ('hubnet_capacity', models.PositiveIntegerField(blank=True, db_column='hubnetCapacity', null=True)),
                ('hubnet_reference', models.CharField(blank=True, db_column='hubnetReference', max_length=25, null=True, unique=True)),
                ('hubnet_transaction_id', models.CharField(blank=True, db_column='hubnetTransactionId', max_length=120, null=True)),
                ('hubnet_payment_id', models.CharField(blank=True, db_column='hubnetPaymentId', max_length=120, null=True)),
                ('hubnet_attempts', models.PositiveSmallIntegerField(db_column='hubnetAttempts', default=0)),
                ('hubnet_last_attempt_at', models.DateTimeField(blank=True, db_column='hubnetLastAttemptAt', null=True)),
                ('hubnet_last_error', models.TextField(blank=True, db_column='hubnetLastError', null=True)),
                ('hubnet_delivered_at', models.DateTimeField(blank=True, db_column='hubnetDeliveredAt', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_column='createdAt')),
                ('updated_at', models.DateTimeField(auto_now=True, db_column='updatedAt')),
                ('order', models.ForeignKey(db_column='orderId', on_delete=django.db.models.deletion.CASCADE, related_name='items', to='orders.order')),
                ('product', models.ForeignKey(db_column='productId', on_delete=django.db.models.deletion.PROTECT, related_name='order_items', to='products.product')),
            ],
            options={
                'db_table': 'order_items',
                'ordering': ('created_at',),
                'indexes': [
                    models.Index(fields=['hubnet_status', 'hubnet_skip', 'updated_at'], name='order_items_hubnet__5d0e7a_idx'),
                    models.Index(fields=['order', 'hubnet_skip'], name='order_items_orderId_8c2f41_idx'),
                ],
            },
        ),
    ]

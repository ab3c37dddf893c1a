from decimal import Decimal
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Fundraiser',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200)),
                ('email', models.EmailField(max_length=254)),
                ('phone', models.CharField(max_length=20)),
                ('address', models.TextField()),
                ('currency', models.CharField(choices=[('BDT', 'BDT'), ('USD', 'USD')], max_length=3)),
                ('payment_method', models.CharField(choices=[('Bkash', 'Bkash'), ('Bank', 'Bank'), ('Card', 'Card')], max_length=10)),
                ('purpose', models.CharField(choices=[('Medical', 'Medical'), ('Education', 'Education'), ('Others', 'Others')], max_length=20)),
                ('donation_type', models.CharField(choices=[('One Time', 'One Time'), ('Monthly', 'Monthly')], max_length=10)),
                ('message', models.TextField(blank=True, default='')),
                ('terms_agreed', models.BooleanField(default=False)),
                ('amount_raised', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='fundraisers', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Donation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('donor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='donations', to=settings.AUTH_USER_MODEL)),
                ('fundraiser', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='donations', to='crowdfunding.fundraiser')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
    ]

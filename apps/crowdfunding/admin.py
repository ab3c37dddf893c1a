from django.contrib import admin
from .models import Fundraiser, Donation


class DonationInline(admin.TabularInline):
    model = Donation
    extra = 0
    readonly_fields = ('donor', 'amount', 'created_at')


@admin.register(Fundraiser)
class FundraiserAdmin(admin.ModelAdmin):
    list_display = ('title', 'owner', 'purpose', 'currency', 'amount_raised', 'created_at')
    list_filter = ('purpose', 'currency', 'payment_method', 'donation_type')
    search_fields = ('title', 'email', 'owner__username')
    inlines = [DonationInline]


@admin.register(Donation)
class DonationAdmin(admin.ModelAdmin):
    list_display = ('fundraiser', 'donor', 'amount', 'created_at')
    readonly_fields = ('created_at',)

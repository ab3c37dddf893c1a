from django.contrib import admin
from .models import LoanRequest, Offer


class OfferInline(admin.TabularInline):
    model = Offer
    extra = 0
    readonly_fields = ('created_at', 'accepted_at')


@admin.register(LoanRequest)
class LoanRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'requester', 'amount', 'purpose', 'term_months', 'status', 'requested_at')
    list_filter = ('status', 'requested_at', 'term_months')
    search_fields = ('requester__username', 'requester__email', 'purpose')
    readonly_fields = ('requested_at', 'updated_at', 'funded_at', 'completed_at', 'repayment_due_date')
    inlines = [OfferInline]
    ordering = ('-requested_at',)

    fieldsets = (
        ('Loan Details', {
            'fields': ('requester', 'amount', 'purpose', 'term_months', 'status')
        }),
        ('Additional Info', {
            'fields': ('description', 'repayment_due_date')
        }),
        ('Timestamps', {
            'fields': ('requested_at', 'updated_at', 'funded_at', 'completed_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    list_display = ('id', 'loan', 'donor', 'amount', 'interest_rate', 'status', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('loan__id', 'donor__username', 'donor__email')
    readonly_fields = ('created_at', 'accepted_at', 'monthly_payment', 'total_repayment')
    ordering = ('-created_at',)

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('loan', 'donor')

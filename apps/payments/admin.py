from django.contrib import admin  # type: ignore

from .models import Payment, PaymentEvent


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("short_id", "booking", "amount", "currency", "status", "refunded_amount", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("short_id", "stripe_payment_intent_id", "booking__short_id")
    readonly_fields = ("short_id", "stripe_payment_intent_id", "client_secret", "succeeded_at")
    raw_id_fields = ("booking",)


@admin.register(PaymentEvent)
class PaymentEventAdmin(admin.ModelAdmin):
    list_display = ("stripe_event_id", "event_type", "processed", "created_at")
    list_filter = ("event_type", "processed")
    search_fields = ("stripe_event_id",)
    readonly_fields = ("payload",)

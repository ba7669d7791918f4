from django.contrib import admin

from shop.infra.models import (
    IdempotencyKey,
    OrderEventORM,
    OrderORM,
    ProcessedWebhookEvent,
    ProductORM,
)


@admin.register(ProductORM)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("sku", "name", "price", "stock", "category", "is_active")
    list_filter = ("category", "brand", "is_active")
    search_fields = ("sku", "name")


class OrderEventInline(admin.TabularInline):
    model = OrderEventORM
    extra = 0
    readonly_fields = ("sequence_number", "event_type", "from_status", "to_status", "payment_status", "source", "created_at")
    fields = readonly_fields
    can_delete = False


@admin.register(OrderORM)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "customer_email", "status", "payment_status", "total_amount", "created_at")
    list_filter = ("status", "payment_status", "shipping_method", "created_at")
    search_fields = ("id", "customer_email", "tracking_number", "checkout_session_id", "payment_intent_id")
    # Money and items are fixed at checkout; status changes go through the lifecycle
    readonly_fields = (
        "id", "user_id", "owner", "items", "subtotal", "shipping_cost", "tax_amount",
        "discount_amount", "total_amount", "status", "payment_status",
        "checkout_session_id", "payment_intent_id", "confirmed_at", "shipped_at", "delivered_at",
    )
    inlines = [OrderEventInline]


@admin.register(OrderEventORM)
class OrderEventAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "sequence_number", "event_type", "from_status", "to_status", "created_at")
    list_filter = ("event_type", "to_status", "created_at")
    readonly_fields = ("id", "order", "sequence_number", "event_type", "from_status", "to_status", "payment_status", "source", "event_data")


@admin.register(ProcessedWebhookEvent)
class ProcessedWebhookEventAdmin(admin.ModelAdmin):
    list_display = ("event_id", "event_type", "created_at")
    list_filter = ("event_type", "created_at")
    search_fields = ("event_id",)
    readonly_fields = ("event_id", "event_type", "result")


@admin.register(IdempotencyKey)
class IdempotencyAdmin(admin.ModelAdmin):
    list_display = ("key", "user_id", "operation", "created_at")
    list_filter = ("operation", "created_at")
    search_fields = ("key", "user_id")

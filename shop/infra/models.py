from __future__ import annotations

from uuid import uuid4

from django.db import models


STATUS_CHOICES = (
    ("PENDING", "Pendiente"),
    ("CONFIRMED", "Confirmado"),
    ("PROCESSING", "Preparando"),
    ("SHIPPED", "Enviado"),
    ("DELIVERED", "Entregado"),
    ("CANCELLED", "Cancelado"),
    ("DISPUTED", "En disputa"),
    ("REFUNDED", "Reembolsado"),
)

PAYMENT_STATUS_CHOICES = (
    ("PENDING", "Pendiente"),
    ("PAID", "Pagado"),
    ("FAILED", "Fallido"),
    ("DISPUTED", "En disputa"),
)

OPERATION_TYPE = (
    ("CREATE_CHECKOUT_SESSION", "Creación de sesión de pago"),
)


def new_product_id() -> str:
    return str(uuid4())


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ProductORM(TimeStampedModel):
    id = models.CharField(primary_key=True, max_length=64, default=new_product_id, editable=False)
    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(max_digits=12, decimal_places=2)
    stock = models.PositiveIntegerField(default=0)
    category = models.CharField(max_length=100, blank=True, default="")
    brand = models.CharField(max_length=100, blank=True, default="")
    weight = models.DecimalField(max_digits=8, decimal_places=3, null=True, blank=True)  # kg
    dimensions = models.JSONField(null=True, blank=True)  # {"length", "width", "height"} cm
    is_active = models.BooleanField(default=True)

    class Meta:
        indexes = [
            models.Index(fields=("category",)),
            models.Index(fields=("is_active",)),
        ]

    def __str__(self):
        return f"{self.sku} - {self.name}"


class OrderORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    user_id = models.CharField(max_length=128)
    owner = models.CharField(max_length=128)
    customer_email = models.CharField(max_length=255)
    customer_name = models.CharField(max_length=255)
    customer_company = models.CharField(max_length=255, null=True, blank=True)

    # Array of {productId, sku, name, quantity, price}; never rewritten after creation
    items = models.JSONField()

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default="PENDING")

    shipping_address = models.JSONField(default=dict, blank=True)
    shipping_method = models.CharField(max_length=20, blank=True, default="")
    carrier = models.CharField(max_length=100, blank=True, default="")
    tracking_number = models.CharField(max_length=100, null=True, blank=True)
    tracking_url = models.URLField(max_length=500, null=True, blank=True)
    estimated_delivery = models.DateField(null=True, blank=True)

    checkout_session_id = models.CharField(max_length=255, null=True, blank=True)
    payment_intent_id = models.CharField(max_length=255, null=True, blank=True)

    confirmed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("user_id", "-created_at")),
            models.Index(fields=("status",)),
            models.Index(fields=("customer_email",)),
            models.Index(fields=("payment_intent_id",)),
        ]

    def __str__(self):
        return f"Order {self.id} - {self.customer_email} - {self.status}"


class OrderEventORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="events",
    )
    sequence_number = models.PositiveIntegerField()
    event_type = models.CharField(max_length=50)
    from_status = models.CharField(max_length=20, blank=True, default="")
    to_status = models.CharField(max_length=20)
    payment_status = models.CharField(max_length=20)
    source = models.CharField(max_length=255, blank=True, default="")
    event_data = models.JSONField(default=dict)

    class Meta:
        unique_together = [("order", "sequence_number")]
        ordering = ["sequence_number"]


class IdempotencyKey(TimeStampedModel):
    key = models.CharField(max_length=255)
    user_id = models.CharField(max_length=128)
    operation = models.CharField(max_length=50, choices=OPERATION_TYPE)
    request_hash = models.CharField(max_length=255)
    response_payload = models.JSONField()

    class Meta:
        unique_together = [("key", "user_id", "operation")]
        indexes = [
            models.Index(fields=("request_hash",)),
        ]


class ProcessedWebhookEvent(TimeStampedModel):
    """Provider event ids already handled, for duplicate delivery detection."""
    event_id = models.CharField(primary_key=True, max_length=255)
    event_type = models.CharField(max_length=100)
    result = models.JSONField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=("event_type", "created_at")),
        ]

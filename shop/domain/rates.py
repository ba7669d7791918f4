"""
Shipping rate table (EUR).
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class ShippingMethod(str, Enum):
    """Shipping method enumeration."""
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"


class CustomerType(str, Enum):
    """Customer tier enumeration."""
    RETAIL = "retail"
    WHOLESALE = "wholesale"
    VIP = "vip"


@dataclass(frozen=True)
class WeightThreshold:
    """Free weight allowance and per-kg surcharge beyond it."""
    threshold: Decimal
    surcharge: Decimal


CURRENCY = "EUR"

BASE_RATES = {
    ShippingMethod.STANDARD: Decimal("9.99"),
    ShippingMethod.EXPRESS: Decimal("19.99"),
    ShippingMethod.OVERNIGHT: Decimal("39.99"),
}

WEIGHT_THRESHOLDS = {
    ShippingMethod.STANDARD: WeightThreshold(Decimal("2"), Decimal("2.50")),
    ShippingMethod.EXPRESS: WeightThreshold(Decimal("2"), Decimal("3.50")),
    ShippingMethod.OVERNIGHT: WeightThreshold(Decimal("1"), Decimal("5.00")),
}

DOMESTIC_MULTIPLIER = Decimal("1.0")
EU_MULTIPLIER = Decimal("1.5")
INTERNATIONAL_MULTIPLIER = Decimal("2.5")

DOMESTIC_COUNTRIES = frozenset({"ES", "SPAIN", "ESPAÑA"})

EU_COUNTRIES = frozenset({
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR",
    "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL",
    "PL", "PT", "RO", "SK", "SI", "SE",
})

FREE_SHIPPING_THRESHOLDS = {
    CustomerType.RETAIL: Decimal("100.00"),
    CustomerType.WHOLESALE: Decimal("250.00"),
    CustomerType.VIP: Decimal("50.00"),
}

CUSTOMER_DISCOUNTS = {
    CustomerType.RETAIL: Decimal("0"),
    CustomerType.WHOLESALE: Decimal("0.15"),
    CustomerType.VIP: Decimal("0.20"),
}

# cm³ per kg
VOLUMETRIC_DIVISOR = Decimal("5000")
VOLUMETRIC_THRESHOLD_KG = Decimal("5")
VOLUMETRIC_SURCHARGE_PER_KG = Decimal("1.50")

VAT_RATE = Decimal("0.21")

CARRIERS = {
    ShippingMethod.STANDARD: "Correos España",
    ShippingMethod.EXPRESS: "SEUR",
    ShippingMethod.OVERNIGHT: "DHL Express",
}

TRACKING_URL_TEMPLATES = {
    "Correos España": "https://www.correos.es/es/es/herramientas/localizador/envios/detalle?tracking-number={number}",
    "SEUR": "https://www.seur.com/livetracking/?segOnlineIdentificador={number}",
    "DHL Express": "https://www.dhl.com/es-es/home/tracking.html?tracking-id={number}",
}


def tracking_url(carrier: str, tracking_number: str) -> str | None:
    template = TRACKING_URL_TEMPLATES.get(carrier)
    return template.format(number=tracking_number) if template else None

BASE_DELIVERY_DAYS = {
    ShippingMethod.STANDARD: 3,
    ShippingMethod.EXPRESS: 1,
    ShippingMethod.OVERNIGHT: 1,
}

EU_EXTRA_DAYS = 2
INTERNATIONAL_EXTRA_DAYS = 5

DESCRIPTIONS = {
    ShippingMethod.STANDARD: "Envío estándar - 3-5 días laborables",
    ShippingMethod.EXPRESS: "Envío express - 1-2 días laborables",
    ShippingMethod.OVERNIGHT: "Envío urgente - Entrega al día siguiente",
}

FREE_SHIPPING_DESCRIPTION = "Envío gratuito - Entrega estándar"

# Declared package value above which standard shipping includes insurance
INSURANCE_VALUE_THRESHOLD = Decimal("100")

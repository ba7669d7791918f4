"""
Shipping pricing engine.

Pure functions over the rate table in ``shop.domain.rates``: the same
request always produces the same quote.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from shop.domain import rates
from shop.domain.errors import ValidationError
from shop.domain.rates import CustomerType, ShippingMethod

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _to_decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class Destination:
    """Shipping destination. Only the country drives pricing."""
    country: str
    state: str | None = None
    city: str | None = None
    postal_code: str | None = None


@dataclass(frozen=True)
class Dimensions:
    """Package dimensions in centimetres."""
    length: Decimal
    width: Decimal
    height: Decimal

    @property
    def volumetric_weight(self) -> Decimal:
        """Billable weight in kg derived from the package volume."""
        return (self.length * self.width * self.height) / rates.VOLUMETRIC_DIVISOR


@dataclass(frozen=True)
class Package:
    """Package weight (kg), optional dimensions and declared value."""
    weight: Decimal
    dimensions: Dimensions | None = None
    value: Decimal = Decimal("0")


@dataclass(frozen=True)
class ShippingRequest:
    """Validated shipping quote request."""
    destination: Destination
    package: Package
    order_value: Decimal
    shipping_method: ShippingMethod | None = None
    customer_type: CustomerType = CustomerType.RETAIL

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ShippingRequest":
        """
        Parse a JSON payload into a request.

        Raises ValidationError naming the first invalid field; nothing is
        computed for a rejected payload.
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("Invalid request body")

        destination = payload.get("destination")
        if not isinstance(destination, Mapping):
            raise ValidationError("Missing destination country")
        country = destination.get("country")
        if not isinstance(country, str) or not country.strip():
            raise ValidationError("Missing destination country")

        package = payload.get("package")
        if not isinstance(package, Mapping):
            raise ValidationError("Invalid package weight")
        weight = package.get("weight")
        if not _is_number(weight) or weight <= 0:
            raise ValidationError("Invalid package weight")

        declared_value = package.get("value", 0)
        if declared_value is None:
            declared_value = 0
        if not _is_number(declared_value) or declared_value < 0:
            raise ValidationError("Invalid package value")

        order_value = payload.get("orderValue")
        if not _is_number(order_value) or order_value < 0:
            raise ValidationError("Invalid order value")

        method = payload.get("shippingMethod")
        shipping_method = None
        if method:
            try:
                shipping_method = ShippingMethod(method)
            except ValueError:
                raise ValidationError("Invalid shipping method")

        customer = payload.get("customerType")
        customer_type = CustomerType.RETAIL
        if customer:
            try:
                customer_type = CustomerType(customer)
            except ValueError:
                raise ValidationError("Invalid customer type")

        return cls(
            destination=Destination(
                country=country.strip().upper(),
                state=destination.get("state"),
                city=destination.get("city"),
                postal_code=destination.get("postalCode"),
            ),
            package=Package(
                weight=_to_decimal(weight),
                dimensions=_parse_dimensions(package.get("dimensions")),
                value=_to_decimal(declared_value),
            ),
            order_value=_to_decimal(order_value),
            shipping_method=shipping_method,
            customer_type=customer_type,
        )


def _parse_dimensions(raw: Any) -> Dimensions | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ValidationError("Invalid package dimensions")
    values = []
    for key in ("length", "width", "height"):
        value = raw.get(key)
        if not _is_number(value) or value <= 0:
            raise ValidationError("Invalid package dimensions")
        values.append(_to_decimal(value))
    return Dimensions(*values)


@dataclass(frozen=True)
class ShippingOption:
    """One priced shipping method."""
    method: ShippingMethod
    carrier: str
    cost: Decimal
    estimated_days: int
    description: str
    tracking_included: bool
    insurance_included: bool
    currency: str = rates.CURRENCY

    def as_dict(self) -> dict:
        return {
            "method": self.method.value,
            "carrier": self.carrier,
            "cost": float(self.cost),
            "currency": self.currency,
            "estimatedDays": self.estimated_days,
            "description": self.description,
            "trackingIncluded": self.tracking_included,
            "insuranceIncluded": self.insurance_included,
        }


@dataclass(frozen=True)
class CalculationDetails:
    """
    Informational breakdown returned with every quote.

    Always computed for the standard method, whichever method was requested.
    """
    base_rate: Decimal
    weight_surcharge: Decimal
    dimension_surcharge: Decimal
    location_surcharge: Decimal
    discounts: Decimal
    taxes: Decimal

    def as_dict(self) -> dict:
        return {
            "baseRate": float(self.base_rate),
            "weightSurcharge": float(self.weight_surcharge),
            "dimensionSurcharge": float(self.dimension_surcharge),
            "locationSurcharge": float(self.location_surcharge),
            "discounts": float(self.discounts),
            "taxes": float(self.taxes),
        }


@dataclass(frozen=True)
class ShippingQuote:
    """Options sorted by ascending cost plus the calculation breakdown."""
    options: list[ShippingOption] = field(default_factory=list)
    breakdown: CalculationDetails | None = None

    def cheapest(self) -> ShippingOption | None:
        return self.options[0] if self.options else None

    def option_for(self, method: ShippingMethod) -> ShippingOption | None:
        for option in self.options:
            if option.method == method:
                return option
        return None

    def as_dict(self) -> dict:
        return {
            "success": True,
            "shippingOptions": [option.as_dict() for option in self.options],
            "calculationDetails": self.breakdown.as_dict() if self.breakdown else None,
        }


def location_multiplier(country: str) -> Decimal:
    """Return the price multiplier for a destination country code or name."""
    code = country.strip().upper()
    if code in rates.DOMESTIC_COUNTRIES:
        return rates.DOMESTIC_MULTIPLIER
    if code in rates.EU_COUNTRIES:
        return rates.EU_MULTIPLIER
    return rates.INTERNATIONAL_MULTIPLIER


def weight_surcharge(weight: Decimal, method: ShippingMethod) -> Decimal:
    """Surcharge for the weight above the method's free allowance."""
    config = rates.WEIGHT_THRESHOLDS[method]
    weight = _to_decimal(weight)
    if weight <= config.threshold:
        return Decimal("0")
    return (weight - config.threshold) * config.surcharge


def dimension_surcharge(dimensions: Dimensions | None) -> Decimal:
    """Surcharge for volumetric weight above the threshold."""
    if dimensions is None:
        return Decimal("0")
    volumetric = dimensions.volumetric_weight
    if volumetric > rates.VOLUMETRIC_THRESHOLD_KG:
        return (volumetric - rates.VOLUMETRIC_THRESHOLD_KG) * rates.VOLUMETRIC_SURCHARGE_PER_KG
    return Decimal("0")


def estimated_days(method: ShippingMethod, multiplier: Decimal) -> int:
    """Delivery estimate in days for a method and location tier."""
    days = rates.BASE_DELIVERY_DAYS.get(method, 3)
    if multiplier > 2:
        return days + rates.INTERNATIONAL_EXTRA_DAYS
    if multiplier > 1:
        return days + rates.EU_EXTRA_DAYS
    return days


def is_free_shipping_eligible(order_value: Decimal, customer_type: CustomerType) -> bool:
    return order_value >= rates.FREE_SHIPPING_THRESHOLDS[customer_type]


def round_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def price_option(
    method: ShippingMethod,
    request: ShippingRequest,
    multiplier: Decimal,
) -> ShippingOption:
    """Price a single shipping method for a validated request."""
    free = (
        method == ShippingMethod.STANDARD
        and is_free_shipping_eligible(request.order_value, request.customer_type)
    )

    cost = rates.BASE_RATES[method] * multiplier
    cost += weight_surcharge(request.package.weight, method)
    cost += dimension_surcharge(request.package.dimensions)
    cost *= 1 - rates.CUSTOMER_DISCOUNTS[request.customer_type]
    if free:
        cost = Decimal("0")
    cost *= 1 + rates.VAT_RATE

    return ShippingOption(
        method=method,
        carrier=rates.CARRIERS[method],
        cost=round_cents(cost),
        estimated_days=estimated_days(method, multiplier),
        description=rates.FREE_SHIPPING_DESCRIPTION if free else rates.DESCRIPTIONS[method],
        tracking_included=True,
        insurance_included=(
            method != ShippingMethod.STANDARD
            or request.package.value > rates.INSURANCE_VALUE_THRESHOLD
        ),
    )


def compute_shipping_options(request: ShippingRequest) -> ShippingQuote:
    """
    Compute shipping options for a request.

    Every method is priced when the request names none. A method whose
    pricing fails is logged and left out instead of failing the quote.
    """
    multiplier = location_multiplier(request.destination.country)
    methods = [request.shipping_method] if request.shipping_method else list(ShippingMethod)

    options = []
    for method in methods:
        try:
            options.append(price_option(method, request, multiplier))
        except Exception as e:
            logger.error(
                "shipping_method_failed",
                extra={"method": method.value, "error": str(e)},
                exc_info=True,
            )

    options.sort(key=lambda option: option.cost)

    standard_base = rates.BASE_RATES[ShippingMethod.STANDARD]
    breakdown = CalculationDetails(
        base_rate=standard_base,
        weight_surcharge=weight_surcharge(request.package.weight, ShippingMethod.STANDARD),
        dimension_surcharge=dimension_surcharge(request.package.dimensions),
        location_surcharge=(multiplier - 1) * standard_base,
        discounts=rates.CUSTOMER_DISCOUNTS[request.customer_type] * 100,
        taxes=rates.VAT_RATE * 100,
    )

    logger.info(
        "shipping_quote_computed",
        extra={
            "country": request.destination.country,
            "customer_type": request.customer_type.value,
            "options_count": len(options),
        },
    )
    return ShippingQuote(options=options, breakdown=breakdown)

"""
PII masking for log payloads (customer emails, names, addresses).
"""
import re
from typing import Any

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)
PHONE_RE = re.compile(r"^[\d\s\+\-\(\)]+$")

EMAIL_FIELDS = {"email", "customeremail", "customer_email", "receipt_email"}
NAME_FIELDS = {"customername", "customer_name", "firstname", "lastname", "fullname"}
PHONE_FIELDS = {"phone", "phonenumber", "phone_number"}
ADDRESS_FIELDS = {"street", "line1", "line2", "address", "postalcode", "postal_code"}
ID_FIELDS = {"userid", "user_id", "owner"}


def mask_email(email: str) -> str:
    """Mask the local part of an email address."""
    if "@" not in email:
        return email
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        masked = "**"
    else:
        masked = local[:2] + "*" * (len(local) - 2)
    return f"{masked}@{domain}"


def mask_phone(phone: str) -> str:
    if len(phone) <= 4:
        return "*" * len(phone)
    return phone[:2] + "*" * (len(phone) - 4) + phone[-2:]


def mask_name(name: str) -> str:
    if len(name) <= 2:
        return "**"
    return name[0] + "*" * (len(name) - 2) + name[-1]


def mask_uuid(uuid_str: str) -> str:
    """Mask UUID (show first 8 chars only)."""
    if len(uuid_str) < 8:
        return "*" * len(uuid_str)
    return uuid_str[:8] + "-****-****-****-************"


def mask_identifier(value: str) -> str:
    """Mask a user identifier. The GUEST sentinel is left readable."""
    if value == "GUEST":
        return value
    if UUID_RE.match(value):
        return mask_uuid(value)
    if "@" in value:
        return mask_email(value)
    return value[:3] + "*" * max(len(value) - 3, 0)


def _mask_value(key: str, value: str) -> str:
    if key in EMAIL_FIELDS:
        return mask_email(value)
    if key in NAME_FIELDS:
        return mask_name(value)
    if key in PHONE_FIELDS and PHONE_RE.match(value):
        return mask_phone(value)
    if key in ADDRESS_FIELDS:
        return "*" * len(value)
    if key in ID_FIELDS:
        return mask_identifier(value)
    return value


def mask_pii_in_dict(data: dict) -> dict:
    """Mask PII in dictionary recursively."""
    masked: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if isinstance(value, dict):
            masked[key] = mask_pii_in_dict(value)
        elif isinstance(value, list):
            masked[key] = [mask_pii_in_dict(item) if isinstance(item, dict) else item for item in value]
        elif isinstance(value, str):
            masked[key] = _mask_value(key_lower, value)
        else:
            masked[key] = value
    return masked

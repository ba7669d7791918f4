"""
Management command to load catalog products from a JSON file.
"""
import json
import logging
from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError

from shop.infra.repositories import ProductRepository

logger = logging.getLogger(__name__)


def validate_product(product) -> list[str]:
    """Return validation problems for one source record."""
    if not isinstance(product, dict):
        return ["Product must be an object"]

    errors = []
    if not product.get("sku") or not isinstance(product.get("sku"), str):
        errors.append("SKU is required and must be a string")
    if not product.get("name") or not isinstance(product.get("name"), str):
        errors.append("Name is required and must be a string")
    price = product.get("price")
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
        errors.append("Price is required and must be a positive number")
    stock = product.get("stock")
    if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
        errors.append("Stock is required and must be a non-negative integer")
    weight = product.get("weight")
    if weight is not None and (isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight <= 0):
        errors.append("Weight must be a positive number")
    return errors


def product_defaults(product: dict) -> dict:
    weight = product.get("weight")
    return {
        "name": product["name"],
        "description": product.get("description") or "",
        "price": Decimal(str(product["price"])),
        "stock": product["stock"],
        "category": product.get("category") or "",
        "brand": product.get("brand") or "",
        "weight": Decimal(str(weight)) if weight is not None else None,
        "dimensions": product.get("dimensions"),
        "is_active": product.get("isActive", True),
    }


class Command(BaseCommand):
    help = 'Load catalog products from a JSON array, upserting by SKU'

    def add_arguments(self, parser):
        parser.add_argument(
            'path',
            help='JSON file with an array of products',
        )

    def handle(self, *args, **options):
        path = options['path']
        try:
            with open(path, encoding='utf-8') as f:
                products = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CommandError(f'Cannot read {path}: {e}')
        if not isinstance(products, list):
            raise CommandError('Products data must be an array')

        repo = ProductRepository()
        inserted = updated = failed = 0
        for product in products:
            errors = validate_product(product)
            sku = product.get("sku") if isinstance(product, dict) else None
            if errors:
                failed += 1
                logger.warning("seed_product_invalid", extra={"product_id": sku, "error": "; ".join(errors)})
                self.stderr.write(f'{sku}: {", ".join(errors)}')
                continue

            _, created = repo.upsert_by_sku(sku, product_defaults(product))
            if created:
                inserted += 1
            else:
                updated += 1

        logger.info(
            "seed_catalog_finished",
            extra={"operation": "seed_catalog", "status": f"{inserted}/{updated}/{failed}"},
        )
        self.stdout.write(
            self.style.SUCCESS(f'Inserted {inserted}, updated {updated}, failed {failed}')
        )

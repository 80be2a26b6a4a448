import random
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from apps.catalog.models import Category, Product
from apps.inventory.services import InventoryService


CATALOG_DATA = {
    "Electronics": {
        "Audio": ["Wireless Headphones", "Bluetooth Speaker", "Earbuds"],
        "Computers": ["Mechanical Keyboard", "Wireless Mouse", "USB-C Hub"],
    },
    "Home & Kitchen": {
        "Cookware": ["Cast Iron Skillet", "Chef Knife", "Cutting Board"],
        "Decor": ["Table Lamp", "Wall Clock"],
    },
    "Books": {
        "Fiction": ["Mystery Novel", "Sci-Fi Anthology"],
        "Non-Fiction": ["Cookbook", "Travel Guide"],
    },
}


class Command(BaseCommand):
    help = "Seeds categories and products with opening stock."

    def add_arguments(self, parser):
        parser.add_argument("--stock", type=int, default=50, help="Opening stock per product")

    @transaction.atomic
    def handle(self, *args, **options):
        created = 0
        for root_name, children in CATALOG_DATA.items():
            root, _ = Category.objects.get_or_create(name=root_name, parent=None)
            for child_name, titles in children.items():
                child, _ = Category.objects.get_or_create(name=child_name, parent=root)
                for title in titles:
                    sku = "-".join(word[:3].upper() for word in title.split())
                    product, was_created = Product.objects.get_or_create(
                        sku=sku,
                        defaults={
                            "title": title,
                            "category": child,
                            "price": Decimal(random.randint(500, 15000)) / 100,
                            "description": f"{title} from the {child_name} range.",
                        },
                    )
                    if was_created:
                        InventoryService.manual_adjustment(
                            product_id=product.id,
                            delta_qty=options["stock"],
                            user=None,
                            reason="Opening stock (seed)",
                        )
                        created += 1

        self.stdout.write(self.style.SUCCESS(f"Seeded {created} products."))

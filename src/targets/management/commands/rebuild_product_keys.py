"""Re-derive the normalized product name stored on targets and suppliers."""
from django.core.management.base import BaseCommand

from targets.consistency import rebuild_product_keys


class Command(BaseCommand):
    help = "Recompute product_key for every target and supplier"

    def handle(self, *args, **options):
        counts = rebuild_product_keys()
        self.stdout.write(self.style.SUCCESS(
            f"Product keys rebuilt: {counts['targets']} target(s), "
            f"{counts['suppliers']} supplier(s) updated"
        ))

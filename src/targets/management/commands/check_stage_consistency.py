"""Report (and optionally repair) targets past sourcing without suppliers."""
from django.core.management.base import BaseCommand

from targets.consistency import find_inconsistent_targets, repair_inconsistent_targets


class Command(BaseCommand):
    help = "List targets at SOURCING_COMPLETED or later whose product has no supplier"

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Roll the listed targets back to SOURCING_REQUEST.",
        )
        parser.add_argument("--actor", default=None, help="Actor name written in the stage history.")

    def handle(self, *args, **options):
        targets = list(find_inconsistent_targets())
        if not targets:
            self.stdout.write(self.style.SUCCESS("All targets are consistent with their suppliers."))
            return

        self.stdout.write(f"{len(targets)} target(s) without supplier:")
        for target in targets:
            self.stdout.write(
                f"  - {target.account_name} / {target.product_name} "
                f"[{target.current_stage}] key='{target.product_key}'"
            )

        if not options["fix"]:
            self.stdout.write("Run again with --fix to roll them back.")
            return

        results = repair_inconsistent_targets(actor_name=options["actor"])
        repaired = sum(len(result.affected_target_ids) for result in results)
        self.stdout.write(self.style.SUCCESS(f"{repaired} target(s) rolled back to SOURCING_REQUEST."))

from django.core.management.base import BaseCommand

from emr.services.clinical_rules import RULES, process_clinical_rules


class Command(BaseCommand):
    help = "Run follow-up rules (diabetes, hypertension, cardiopathy) and notify doctors of overdue patients."

    def handle(self, *args, **options):
        result = process_clinical_rules()
        for rule in RULES:
            self.stdout.write(f"rule {rule.key}: every {rule.months} months")
        self.stdout.write(self.style.SUCCESS(
            f"Processed {result['processed_rules']} rules, "
            f"{result['notifications_created']} notifications at {result['processed_at']}"
        ))

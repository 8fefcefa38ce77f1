"""Mark shipped orders whose estimated delivery date has passed as delivered.

Meant to run once a day from cron::

    python manage.py deliver_overdue_orders
"""

import datetime

from django.core.management.base import BaseCommand, CommandError

from apps.orders import providers


class Command(BaseCommand):
    help = "Mark shipped orders past their estimated delivery date as delivered."

    def add_arguments(self, parser):
        parser.add_argument("--date", help="Treat this ISO date (YYYY-MM-DD) as today.")

    def handle(self, *args, **options):
        today = None
        if options.get("date"):
            try:
                today = datetime.date.fromisoformat(options["date"])
            except ValueError as e:
                raise CommandError(f"Invalid --date: {options['date']}") from e
        count = providers.get_status_service().auto_deliver_overdue(today)
        self.stdout.write(f"{count} order(s) marked as delivered")

# accounting/management/commands/open_exercise.py

from datetime import date

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from accounts.authz import ActorContext
from accounting.commands import create_exercise, initialize_chart
from accounting.models import Exercise


class Command(BaseCommand):
    help = "Open a fiscal exercise and seed its chart of accounts"

    def add_arguments(self, parser):
        parser.add_argument("code")
        parser.add_argument("start_date", type=date.fromisoformat)
        parser.add_argument("end_date", type=date.fromisoformat)
        parser.add_argument("--as", dest="email", required=True, help="Email of the user running the command")
        parser.add_argument("--label", default="")
        parser.add_argument("--currency", default=None)
        parser.add_argument("--copy-chart-from", dest="source", default=None, help="Exercise code to copy the chart from")

    def handle(self, *args, **options):
        User = get_user_model()
        try:
            user = User.objects.get(email=options["email"])
        except User.DoesNotExist:
            raise CommandError(f"No user with email {options['email']}")
        actor = ActorContext.for_user(user)

        source = None
        if options["source"]:
            source = Exercise.objects.filter(code=options["source"]).first()
            if source is None:
                raise CommandError(f"Exercise {options['source']} not found")

        result = create_exercise(
            actor,
            options["code"],
            options["start_date"],
            options["end_date"],
            label=options["label"],
            base_currency=options["currency"],
        )
        if not result.success:
            raise CommandError(f"{result.code}: {result.error}")

        chart = initialize_chart(actor, result.data, source_exercise=source)
        if not chart.success:
            raise CommandError(f"{chart.code}: {chart.error}")

        self.stdout.write(self.style.SUCCESS(
            f"Exercise {result.data.code} opened with {chart.details['created']} accounts."
        ))

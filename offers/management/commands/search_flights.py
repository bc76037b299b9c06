from __future__ import annotations

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from offers.services import search_code
from offers.services.pipeline import search_offers
from offers.services.ranking import STOPS_FILTERS, SortMode, ViewFilters


class Command(BaseCommand):
    help = "Run one flight search from a search code and print the ranked offers."

    def add_arguments(self, parser) -> None:  # noqa: ANN001
        parser.add_argument("code", help="Search code, e.g. JFK2310LHR241011.")
        parser.add_argument(
            "--sort",
            choices=[mode.value for mode in SortMode],
            default=SortMode.BEST.value,
            help="Ordering of the printed offers.",
        )
        parser.add_argument(
            "--stops",
            choices=tuple(STOPS_FILTERS),
            default="any",
            help="Restrict to direct or at most one stop.",
        )
        parser.add_argument("--limit", type=int, default=20, help="Maximum number of offers to print.")

    def handle(self, *args, **options):  # noqa: ANN002, ANN003, ANN201
        query = search_code.parse(options["code"])
        if not query.is_searchable:
            raise CommandError(f"Search code {options['code']!r} has no origin, destination and departure date.")

        result = async_to_sync(search_offers)(
            query=query,
            filters=ViewFilters.from_params(stops=options["stops"]),
            sort_mode=options["sort"],
        )
        trip = f"{query.origin}-{query.destination} {query.depart_date:%d/%m}"
        if query.return_date:
            trip += f" / {query.return_date:%d/%m}"
        self.stdout.write(f"{trip}  sources: {', '.join(f'{k}={v}' for k, v in result.sources.items()) or '-'}")

        if result.no_results:
            self.stdout.write(self.style.WARNING("No offers found."))
            return

        for offer in result.offers[: max(1, options["limit"])]:
            self.stdout.write(
                f"{offer.price:>10} {offer.currency}  {offer.duration_minutes // 60}h{offer.duration_minutes % 60:02d}m  "
                f"{offer.stop_count} stop(s)  {offer.airline or '?'}  [{offer.source}]"
            )
        self.stdout.write(self.style.SUCCESS(f"{len(result.offers)} offers."))

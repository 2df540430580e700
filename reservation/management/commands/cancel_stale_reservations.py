from django.core.management.base import BaseCommand

from reservation.services import ReservationService


class Command(BaseCommand):
    help = "Cancel confirmed reservations older than RESERVATION_AUTO_CANCEL_DAYS. Meant to run daily from cron."

    def handle(self, *args, **options):
        cancelled = ReservationService.cancel_stale_reservations()
        if cancelled:
            self.stdout.write(self.style.SUCCESS(f"Auto-cancelled {cancelled} reservation(s)"))
        else:
            self.stdout.write("No stale confirmed reservations found")

import time

from django.core.management.base import BaseCommand
from django.utils import timezone

from payments.integrations.phonepe import PhonePeError
from payments.models import PaymentOrder
from payments.services import reconcile_payment


class Command(BaseCommand):
    help = "Poll PhonePe order status for initiated/pending payments and update local records"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.5)
        parser.add_argument("--older-than-minutes", type=int, default=1)

    def handle(self, *args, **opts):
        cutoff = timezone.now() - timezone.timedelta(minutes=opts["older_than_minutes"])
        qs = (
            PaymentOrder.objects.filter(status__in=[PaymentOrder.STATUS_INITIATED, PaymentOrder.STATUS_PENDING])
            .filter(updated_at__lt=cutoff)
            .order_by("updated_at")[: opts["max"]]
        )

        orders = list(qs)
        if not orders:
            self.stdout.write(self.style.SUCCESS("No pending payments to reconcile."))
            return

        updated = 0
        for order in orders:
            try:
                result = reconcile_payment(order.merchant_order_id)
                status = result["localData"]["status"]
                if status != order.status:
                    updated += 1
                self.stdout.write(self.style.SUCCESS(f"{order.merchant_order_id}: {order.status} -> {status}"))
            except PhonePeError as e:
                self.stdout.write(self.style.WARNING(f"{order.merchant_order_id}: {e}"))
            if opts["sleep"]:
                time.sleep(opts["sleep"])

        self.stdout.write(self.style.SUCCESS(f"Checked {len(orders)}, updated {updated} payments."))

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.cache import cache
from django.core.management.base import BaseCommand
from django.utils import timezone

from practice.models import Clinic
from practice.realtime.consumers import clinic_group
from practice.services import dashboards as boards


class Command(BaseCommand):
    help = "Warm the dashboard caches of active clinics; broadcast a refresh event to each clinic group."

    def add_arguments(self, parser):
        parser.add_argument("--clinic", help="Only refresh this clinic id")

    def handle(self, *args, **options):
        now = timezone.now()
        ttl = settings.DASHBOARD_CACHE_SECONDS
        clinics = Clinic.objects.filter(is_active=True)
        if options.get("clinic"):
            clinics = clinics.filter(pk=options["clinic"])

        channel_layer = get_channel_layer()
        refreshed = 0
        for clinic in clinics:
            keys = []
            builders = [
                (boards.cache_key(clinic.pk, "admin"), lambda: boards.admin_stats(clinic)),
                (boards.cache_key(clinic.pk, "operational"), lambda: boards.operational_metrics(clinic)),
                (boards.cache_key(clinic.pk, "receptionist"), lambda: boards.receptionist_dashboard(clinic)),
            ]
            for period in boards.PERIOD_MONTHS:
                builders.append((
                    boards.cache_key(clinic.pk, "revenue", period),
                    lambda p=period: boards.revenue_analytics(clinic, p),
                ))
            for key, build in builders:
                cache.set(key, build(), ttl)
                keys.append(key)
            refreshed += len(keys)

            if channel_layer is not None:
                event = {
                    "type": "broadcast.refresh",
                    "version": int(now.timestamp()),
                    "ts": now.isoformat(),
                    "clinic_id": str(clinic.pk),
                    "keys": keys,
                }
                async_to_sync(channel_layer.group_send)(clinic_group(clinic.pk), event)

        self.stdout.write(self.style.SUCCESS(f"Refreshed {refreshed} keys at {now}"))

from __future__ import annotations

import signal

import structlog
from django.conf import settings
from django.core.management.base import BaseCommand

from modules.orders.handlers import InventoryEventHandler, PaymentEventHandler
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import SagaOrchestrator
from shared.infrastructure.bus import build_event_bus

logger = structlog.get_logger(__name__)


class Command(BaseCommand):
    help = "Consume inventory and payment events and drive the order saga."

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single consume round and exit.",
        )

    def handle(self, *args, **options):
        bus = build_event_bus("redis")
        orchestrator = SagaOrchestrator(OrderDjangoRepository(), bus)
        bus.subscribe(settings.INVENTORY_EVENTS_TOPIC, InventoryEventHandler(orchestrator))
        bus.subscribe(settings.PAYMENT_EVENTS_TOPIC, PaymentEventHandler(orchestrator))

        def shutdown(signum, _frame):
            logger.info("saga_consumer.shutdown_requested", signal=signum)
            bus.stop()

        try:
            if options["once"]:
                processed = bus.poll()
                self.stdout.write(f"Processed {processed} message(s).")
                return
            signal.signal(signal.SIGTERM, shutdown)
            signal.signal(signal.SIGINT, shutdown)
            self.stdout.write(
                self.style.SUCCESS(
                    "Consuming "
                    f"{settings.INVENTORY_EVENTS_TOPIC}, {settings.PAYMENT_EVENTS_TOPIC}"
                )
            )
            bus.run_forever()
        finally:
            bus.close()
            logger.info("saga_consumer.closed")

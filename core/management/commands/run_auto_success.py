import logging
import time

from django.core.management.base import BaseCommand

from core.simulator import run_due_checks, success_rate

logger = logging.getLogger(__name__)


class Command(BaseCommand):
	help = "Poll for yellow pay-ins whose auto-success check is due and run them"

	def add_arguments(self, parser):
		parser.add_argument("--once", action="store_true", help="run one pass and exit")
		parser.add_argument("--interval", type=float, default=5.0, help="seconds between passes")

	def handle(self, *args, **options):
		if options["once"]:
			settled = run_due_checks()
			self.stdout.write(f"settled {settled}")
			return

		self.stdout.write(f"auto-success poller started (rate {success_rate()}%, every {options['interval']}s)")
		try:
			while True:
				settled = run_due_checks()
				if settled:
					logger.info("auto-success pass settled %d order(s)", settled)
				time.sleep(options["interval"])
		except KeyboardInterrupt:
			self.stdout.write("stopped")

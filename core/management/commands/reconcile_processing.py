"""Reconciliation sweep for settlements left processing.

Meant to be run periodically (cron, k8s CronJob, ...):
    django-admin reconcile_processing --settings=zidwell.settings --older-than 10
"""

from django.core.management.base import BaseCommand

from core.services import reconcile_processing, run_ledger_reconciliation


class Command(BaseCommand):
	help = "Resolve stale processing settlements against the provider and snapshot ledger consistency"

	def add_arguments(self, parser):
		parser.add_argument("--older-than", type=int, default=None, help="minutes since last update (default: settings)")
		parser.add_argument("--skip-ledger-check", action="store_true", help="don't write a ReconciliationRun")

	def handle(self, *args, **options):
		counts = reconcile_processing(older_than_minutes=options["older_than"])
		self.stdout.write(" ".join(f"{k}={v}" for k, v in counts.items()))

		if not options["skip_ledger_check"]:
			run = run_ledger_reconciliation()
			self.stdout.write(f"ledger ok={run.ok} mismatched_users={run.mismatched_users}")
			if not run.ok:
				self.stderr.write(run.notes)

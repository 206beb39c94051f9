"""Management command to replay failed gateway webhooks."""
from __future__ import annotations

from typing import Iterable, Optional

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from billing.gateways import WebhookEvent
from billing.models import WebhookEventLog
from billing.services.webhooks import build_webhook_payload
from billing.tasks import process_webhook_event_async


class Command(BaseCommand):
    help = "Replay failed gateway webhooks through the normal reconciliation pipeline."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--task-id",
            dest="task_ids",
            action="append",
            help="Replay only the given webhook task id (webhook:<gateway>:<txid>). Can be supplied multiple times.",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum number of webhooks to replay in this run.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Preview webhooks that would be replayed without performing any changes.",
        )

    def handle(self, *args, **options) -> None:
        task_ids: Optional[Iterable[str]] = options.get("task_ids")
        limit: Optional[int] = options.get("limit")
        dry_run: bool = options.get("dry_run")

        queryset = WebhookEventLog.objects.filter(status=WebhookEventLog.Status.FAILED).order_by("created_at")
        if task_ids:
            queryset = queryset.filter(task_id__in=list(task_ids))

        if limit is not None:
            queryset = queryset[:limit]

        entries = list(queryset)
        total = len(entries)
        if total == 0:
            self.stdout.write(self.style.WARNING("No failed webhooks matched the requested filters."))
            return

        processed = 0
        failed = 0

        for entry in entries:
            self.stdout.write(f"Replaying webhook {entry.task_id}")
            if dry_run:
                continue

            payload = build_webhook_payload(
                entry.gateway_name,
                WebhookEvent.from_dict(entry.payload or {}),
                timezone.now(),
                entry.tenant_id or None,
            )
            try:
                result = process_webhook_event_async.run(payload)
            except Exception as exc:
                failed += 1
                WebhookEventLog.objects.filter(pk=entry.pk).update(
                    status=WebhookEventLog.Status.FAILED,
                    last_error=f"replay failed: {exc}",
                )
                self.stderr.write(f"  failed: {exc}")
                continue

            processed += 1
            self.stdout.write(f"  {result.get('reason') or result.get('status')}")

        if dry_run:
            self.stdout.write(
                self.style.WARNING(f"Dry run complete. {total} webhooks would be replayed.")
            )
            return

        summary = f"Replay complete: {processed} succeeded, {failed} failed, {total} total."
        if failed:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))

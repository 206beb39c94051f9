from django.contrib import admin

from .models import WebhookEventLog

# Plans, members, charges and payments live in tenant schemas and are
# managed through the club back office, not the shared admin site.


@admin.register(WebhookEventLog)
class WebhookEventLogAdmin(admin.ModelAdmin):
    """Monitor webhook processing progress and failures."""

    list_display = (
        "task_id",
        "gateway_name",
        "event_type",
        "status",
        "outcome",
        "handled",
        "tenant_id",
        "attempts",
        "last_received_at",
        "processed_at",
        "last_error_short",
    )
    search_fields = ("task_id", "gateway_txid", "tenant_id")
    list_filter = ("gateway_name", "status", "handled", "event_type")
    readonly_fields = (
        "task_id",
        "gateway_name",
        "gateway_txid",
        "event_type",
        "payload",
        "status",
        "outcome",
        "tenant_id",
        "attempts",
        "handled",
        "last_error",
        "last_received_at",
        "processed_at",
        "created_at",
    )
    ordering = ("-created_at",)

    fieldsets = (
        ("Event", {"fields": ("task_id", "gateway_name", "gateway_txid", "event_type", "payload")}),
        ("Processing", {"fields": ("status", "outcome", "tenant_id", "attempts", "handled", "last_error")}),
        ("Timestamps", {"fields": ("last_received_at", "processed_at", "created_at")}),
    )

    @admin.display(description="Last error")
    def last_error_short(self, obj):
        if not obj.last_error:
            return "-"
        return obj.last_error[:80] + ("…" if len(obj.last_error) > 80 else "")

    def has_add_permission(self, request):
        return False

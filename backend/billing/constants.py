"""Shared billing constants."""

# Actor ids recorded in the audit log for unattended work.
SYSTEM_CRON_ACTOR = "system:cron"
SYSTEM_WEBHOOK_ACTOR = "system:webhook"
SYSTEM_JOB_ACTOR = "system:job"

# Payment methods settled outside any gateway.
OFFLINE_METHODS = frozenset({"CASH", "BANK_TRANSFER"})

CHARGE_GENERATION_ATTEMPTS = 3
WEBHOOK_ATTEMPTS = 3

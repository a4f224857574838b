"""Well-known actor identities recorded in created_by_id / processed_by_id."""

from uuid import UUID

# Automated processing (payment webhooks, attribution, scheduled jobs)
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")

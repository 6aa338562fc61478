"""External CRM integration: field mapping, adapters, sync orchestration and duplicate detection."""

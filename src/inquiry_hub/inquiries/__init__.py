"""Inquiry records, staff tasks and activity, and the lifecycle fan-out."""

"""Business logic: scans, reconciliation, tasks and their supporting services."""

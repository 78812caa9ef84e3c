"""ClientFlow automation core: job queue, reminder scanner, SLA monitor and snapshots."""

"""Background job handlers and registry."""

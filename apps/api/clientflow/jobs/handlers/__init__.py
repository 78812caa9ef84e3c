"""Job handlers, one module per job family."""

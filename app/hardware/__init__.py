"""Field controller I/O."""

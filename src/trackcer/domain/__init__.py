"""Domain layer: exceptions and value objects, no I/O."""

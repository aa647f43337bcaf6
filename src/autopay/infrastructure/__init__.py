"""Infrastructure layer: stores, scheduler and reference adapters."""

"""Image generation provider adapters."""

"""Record store backends and generated-image writers."""

"""Core engine: resilience, device lifecycle, alert dispatch and health."""

"""Infrastructure layer - configuration, persistence and external clients."""

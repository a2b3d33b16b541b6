"""Atlas Admin API clients."""

"""Infrastructure: planning providers and Redis connection management."""

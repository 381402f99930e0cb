"""Engine components: observability, rate limiting, caching and reporting."""

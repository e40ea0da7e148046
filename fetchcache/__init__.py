"""Client-side fetch cache with background refresh and TTL rating caches."""

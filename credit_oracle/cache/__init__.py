"""TTL cache used for short-lived provider health results."""
from .ttl_cache import TTLCache
from .cache_key import generate_provider_status_key

__all__ = ["TTLCache", "generate_provider_status_key"]

"""Cache key generation logic."""


def generate_provider_status_key(provider_name: str, category: str = "onchain") -> str:
    """
    Generate a cache key for a provider health probe result.

    Args:
        provider_name: Registered provider name (e.g. 'blockscout')
        category: Provider category ('onchain', 'credit_report', 'bank_report')

    Returns:
        Cache key string

    Example:
        >>> generate_provider_status_key("blockscout")
        "provider:onchain:blockscout:status"
    """
    return f"provider:{category}:{provider_name}:status"

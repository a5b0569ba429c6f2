"""Configuration package: environment-driven Settings."""
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]

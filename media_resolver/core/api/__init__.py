from media_resolver.core.api.base import BaseAPIClient, APIError
from media_resolver.core.api.instagram import InstagramClient

__all__ = [
    "BaseAPIClient",
    "APIError",
    "InstagramClient",
]

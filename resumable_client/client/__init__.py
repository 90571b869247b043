"""TUS protocol client implementations."""

from resumable_client.client.base import TusClient, resolve_location_url
from resumable_client.client.uploader import Uploader

__all__ = ["TusClient", "Uploader", "resolve_location_url"]

from .http_client import FixtureFetcher, RegistryFetcher, SaferRegistryClient
from .parsers import parse_snapshot

__all__ = ["FixtureFetcher", "RegistryFetcher", "SaferRegistryClient", "parse_snapshot"]

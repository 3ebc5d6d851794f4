"""
MongoDB client factory for the search platform connection.
"""

import logging
from typing import Optional
from urllib.parse import quote_plus

from pymongo import MongoClient

# Configure logging
logger = logging.getLogger(__name__)


class MongoDBClient:
    """Factory for MongoDB connections, with optional credentials injected into the URI."""

    def __init__(
        self,
        uri: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout_ms: int = 10000
    ):
        """Initialize MongoDB client configuration."""
        self.uri = uri
        self.username = username
        self.password = password
        self.timeout_ms = timeout_ms

    def build_connection_string(self) -> str:
        """
        Construct the connection URI, replacing any credentials it already holds.
        Expected format: mongodb+srv://cluster.mongodb.net/?retryWrites=true&w=majority
        """
        if "://" not in self.uri:
            raise ValueError(
                "Invalid MongoDB URI format. Expected format: mongodb://host:port/ or mongodb+srv://cluster.mongodb.net/")

        if not self.username or self.password is None:
            return self.uri

        scheme, rest = self.uri.split("://", 1)
        if "@" in rest:
            rest = rest.split("@", 1)[1]

        # Credentials may contain reserved characters
        return f"{scheme}://{quote_plus(self.username)}:{quote_plus(self.password)}@{rest}"

    def get_client(self) -> MongoClient:
        """Create and return a new MongoDB client instance."""
        logger.info("Creating MongoDB client")
        return MongoClient(self.build_connection_string(), serverSelectionTimeoutMS=self.timeout_ms)

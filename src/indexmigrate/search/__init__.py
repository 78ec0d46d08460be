"""
Search engine adapters for indexmigrate.

Example:
    >>> from indexmigrate.search import ElasticsearchIndexClient, InMemorySearchIndexClient
    >>>
    >>> client = ElasticsearchIndexClient.from_url("http://localhost:9200")
    >>> test_client = InMemorySearchIndexClient()
"""

from indexmigrate.search.elasticsearch import ElasticsearchIndexClient
from indexmigrate.search.in_memory import InMemoryIndex, InMemorySearchIndexClient
from indexmigrate.search.interface import SearchDocument, SearchIndexClient

__all__ = [
    "ElasticsearchIndexClient",
    "InMemoryIndex",
    "InMemorySearchIndexClient",
    "SearchDocument",
    "SearchIndexClient",
]

"""External integrations (indexers)."""

from grabarr.infrastructure.integrations.newznab_indexer import NewznabIndexer

__all__ = ["NewznabIndexer"]

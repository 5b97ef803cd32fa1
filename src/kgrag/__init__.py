"""kgrag - multi-tenant knowledge retrieval over passages and an entity graph."""

__version__ = "0.1.0"

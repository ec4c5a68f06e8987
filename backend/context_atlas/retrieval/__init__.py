"""Retrieval components: vector search, page/task reads, the page graph and context assembly."""

"""
Keyword Search Server - BM25 lexical retrieval for RAG pipelines.

Build a named index from uploaded text files or pre-chunked JSON, query it for
the top-k chunks, and download the index artifact for offline use.
"""

__version__ = "0.1.0"

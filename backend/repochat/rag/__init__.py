"""Retrieval-augmented question answering over indexed repositories.

Ingestion: ``chunker`` → ``embeddings`` → ``vector_store`` (via ``indexer``).
Query: ``translation`` → ``indexer.search`` → ``prompts`` → ``generator``,
driven by ``orchestrator`` and exposed over HTTP by ``router``.
"""

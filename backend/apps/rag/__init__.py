"""
RAG (Retrieval Augmented Generation) app.

Provides:
- Session-scoped similarity retrieval over completed chunks
- Grounded or general-knowledge answer generation
- Labeled answers with citations
"""

"""
Document store package.

    pinecone_store   Pinecone vector store — upsert and query
    retriever        Structured snippet retrieval and local file loading
"""

from .pinecone_store import query_similar, upsert_documents
from .retriever import load_text_documents, retrieve_documents

__all__ = [
    "retrieve_documents",
    "load_text_documents",
    "upsert_documents",
    "query_similar",
]

"""
Vector storage for the knowledge module.
"""

from .search import cosine_similarity, cosine_distance, top_k_nearest
from .store import VectorStore, database_path

__all__ = [
    "cosine_similarity",
    "cosine_distance",
    "top_k_nearest",
    "VectorStore",
    "database_path",
]

"""Similarity matrix containers."""

from .similarity import NavigationMatrix, SimilarityMatrix, WhereToAdd

__all__ = ["SimilarityMatrix", "NavigationMatrix", "WhereToAdd"]

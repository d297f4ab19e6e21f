"""Duplicate detection for the song library.

Contains:
- similarity: Cheap title similarity (substring ratio / character-set Jaccard)
- engine: Exact-duplicate cleanup, fuzzy review groups and batched deletes
"""

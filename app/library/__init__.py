"""Song library primitives.

Contains:
- normalize: Text cleanup for stored fields and search comparison
- parsers: DJ-software export parsers (attribute-block XML, tab-delimited)
- store: Owner-scoped record store over SQLAlchemy
"""

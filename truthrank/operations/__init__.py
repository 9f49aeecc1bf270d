"""
Operations Layer

Pure rank logic with no I/O. Operations take plain data models and an injected
clock, and either return new values or mutate the UserStats working copy they
are handed.

Architecture:
- Database layer: persistence of UserStats documents
- Operations layer: catalog, validation, scoring inputs and upgrade transitions
- Service layer: rate limiting, caching, batch jobs and the interactive surface
"""

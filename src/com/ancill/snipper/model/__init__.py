"""
Database Models

This package defines the database models and repositories for the Snipper service using SQLAlchemy ORM.

Key Models:
- base.py: Base SQLAlchemy model, shared column types and the bounded store operation helper
- snippets.py: Snippet records and the expiry-aware SnippetRepository
- users.py: User accounts and the UserRepository, which also verifies credentials
- health.py: Health monitoring gauge

Repositories own every query against their tables. Each repository method is a single round trip
bounded by a timeout, and failures of the database surface as StoreError.
"""

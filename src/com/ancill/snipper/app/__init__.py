"""
Snipper Application Layer

This package implements the web application layer for the Snipper service, handling HTTP requests
and responses using the aiohttp framework and rendering pages with aiohttp_jinja2.

Key Components:
- cli.py: Entry point for running the application
- server.py: Application factory, startup/shutdown of shared resources
- config.py: Configuration management using Pydantic settings and typed AppKeys
- middleware.py: Request pipeline stages and the Chain builder
- routes.py: Static route table, chain selection per route and the unmatched-path responder
- forms.py: Form validation models
- handlers/: Request handlers for snippets, users, account and internal endpoints
- tasks.py: Background tasks for health decay and expired snippet cleanup
- metrics.py: Metrics client abstraction

Every request passes the standard chain:
- recover: turns unexpected exceptions into a generic 500/503
- access_log: request log line and request metrics
- secure_headers: browser hardening headers

Page routes additionally run the dynamic chain (session, CSRF, authentication context) and
protected routes require a logged-in user.
"""

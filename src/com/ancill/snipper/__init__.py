"""
Snipper - Snippet Sharing Service

This package implements a server-rendered snippet sharing service. Authenticated users create short
text snippets that are kept for a chosen retention period (one day, one week or one year) and are
visible to everyone until they expire.

Key Components:
- app: Web application layer with the middleware chain, route table, request handlers and server setup
- model: Database models and repositories for snippets and users
- session: Redis-backed server-side sessions and the per-request authentication context
- ui: Jinja2 templates and static assets served by the application

Architecture Overview:
1. Request Pipeline:
   - Every request passes recover, access log and secure header stages
   - Page routes additionally load and save the session, enforce CSRF tokens and attach the
     authentication context
   - Protected routes redirect anonymous users to the login page

2. Snippet Lifecycle:
   - Snippets are inserted with an expiry computed from the retention period
   - Expired snippets are invisible to reads and eventually removed by a background task

3. Session Lifecycle:
   - Sessions are created on first visit and stored in Redis with a TTL
   - Session tokens are rotated on login and logout to prevent fixation
"""

"""
Sessions and Authentication Context

- store.py: RedisSessionStore, the per-request Session and the SessionManager that ties sessions to
  the session cookie
- context.py: AuthContext, the per-request "who is this" derived from the session
"""

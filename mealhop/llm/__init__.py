"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build the ranking prompt from the request context and candidate menu items.
- Call the Groq LLM and return its parsed JSON ranking.
- Translate transport, status and parsing failures into ranker errors so the
  caller can fall back to local ranking.
"""

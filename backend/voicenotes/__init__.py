"""
VoiceNotes Backend — Application Package
==========================================

What: REST backend for a personal note-taking app (rich-text notes, tags,
      voice recordings, AI rephrasing).
How:  Layered package:

    ┌─────────────────────────────────────┐
    │      Routes (FastAPI routers)       │  ← HTTP, auth dependency
    ├─────────────────────────────────────┤
    │   Services (ownership, tag upsert,  │  ← business rules
    │   storage, identity, Gemini)        │
    ├─────────────────────────────────────┤
    │   Models (SQLAlchemy) & Schemas     │
    ├─────────────────────────────────────┤
    │   Database (async sessions)         │
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"

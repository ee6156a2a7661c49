# Routes package init
"""
VoiceNotes Backend — API Routes Package
=========================================

Route Inventory:
    - auth.py:        GET/POST /api/auth
    - notes.py:       /api/note, /api/note/grouped, /api/note/tags,
                      /api/note/create, /api/note/rephrase,
                      /api/note/pin/{id}, /api/note/{id}
    - recordings.py:  /api/recording, /api/recording/{path},
                      /api/recording/files/{path}
    - health.py:      GET /health

Handlers stay thin: authenticate, parse input, call a service, return the
schema. Ownership and business rules live in services/.
"""

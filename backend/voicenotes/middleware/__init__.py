# Middleware package init
"""
VoiceNotes Backend — Middleware Package
=========================================

Request path (outermost first):
    RateLimit → RequestID → Logging → GZip → CORS → route

    - RateLimit rejects before anything else runs
    - RequestID sets X-Request-ID so log lines and error bodies share it
    - Logging records status and duration once the response exists
"""

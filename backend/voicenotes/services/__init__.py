# Services package init
"""
VoiceNotes Backend — Services Layer
=====================================

Service Inventory:
    - NoteService: note/tag CRUD with ownership checks
    - UserService: lazy placeholder rows and profile sync
    - RecordingService + StorageBackend: audio upload/delete (Supabase or disk)
    - SessionTokenVerifier / IdentityProviderClient: Clerk tokens and profiles
    - LLMService (abstract) / GeminiService: AI rephrasing
    - dashboard: HTML previews and date grouping (pure functions)

Module-level singletons hold the only shared state: the circuit breaker and
the JWKS cache.
"""

"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- snowflake: Drop persistence
- storage: Object storage (Supabase)
- video: Preview frame extraction (FFmpeg)

These wrappers translate between external formats and our domain models.
"""

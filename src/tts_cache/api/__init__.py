"""
FastAPI REST API Layer for tts-cache.

    - routes.py: /api/tts, /audio/..., /admin/sweep, /health, /metrics
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""

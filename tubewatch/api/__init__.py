"""
FastAPI service for tubewatch.

Provides:
- GET /ws - Live keyword subscription (WebSocket)
- GET /search - One-shot keyword search
- GET /channels/{channel_id} - Channel profile with latest videos
- GET /videos/{video_id}/tags - Video tags
- GET /health - Service health check
"""

from tubewatch.api.app import create_app

__all__ = ["create_app"]

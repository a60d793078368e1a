"""FastAPI application for the Movie Emotion Tracker timeline service.

This module provides a REST API with endpoints for:
- /health: Service health check
- /aggregate: Consensus aggregation
- /nlp/analyze: Review-text timelines
- /reviews: Section-rated reviews
- /live-sessions: Live-reaction capture

Example:
    To run the API server:

    $ uvicorn src.api.main:app --host 0.0.0.0 --port 8000
"""

from .main import app, create_app

__all__ = ["app", "create_app"]

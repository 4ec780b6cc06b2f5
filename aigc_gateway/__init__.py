"""
Compatibility gateway package.

This package contains:
- settings: configuration read from the environment / .env
- logging_config: shared logging setup
- deps: FastAPI dependencies (HTTP client, upstream client, ledger, poll cache)
- upstream: upstream job API client, status normalisation, media upload, waiting
- services: per-surface translation (video jobs, kling, generateContent, chat)
- api: HTTP routers for each surface
- routes: FastAPI app factory
"""

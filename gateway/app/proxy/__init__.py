"""
Proxy Package

Forwarding stage of the gateway:
- payload: request validation and upstream request shaping
- upstream: retrying caller for the generation API
- translator: upstream response to generated text or error
- handler: per-request orchestration
- routes: FastAPI endpoint
"""

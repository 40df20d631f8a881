"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import attendance, auth, comments, notices, profiles, system, tasks

api_router = APIRouter()

# Sign-up, sign-in, tokens, session
api_router.include_router(auth.router)

# Team roster and roles
api_router.include_router(profiles.router)

# Tasks, assignments and their comments
api_router.include_router(tasks.router)
api_router.include_router(comments.router)

# Daily attendance
api_router.include_router(attendance.router)

# Notice board
api_router.include_router(notices.router)

# Health, client config
api_router.include_router(system.router)

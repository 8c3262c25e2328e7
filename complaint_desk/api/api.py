"""
API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from complaint_desk.api.endpoints import auth, complaints, health

api_router = APIRouter()

# Signup, login, verification, logout
api_router.include_router(auth.router)

# Complaint submission and triage
api_router.include_router(complaints.router)

# Liveness
api_router.include_router(health.router)

from fastapi import APIRouter

from codex.api.endpoints import auth, oauth, verification

# All /auth routes; mounted at the root and under settings.API_PREFIX
api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(verification.router)
api_router.include_router(oauth.router)

from fastapi import APIRouter

from minrisk.api.v1.endpoints import (
    audit,
    auth,
    incidents,
    invitations,
    kri,
    organizations,
    risks,
    settings,
    users,
    version,
)

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(organizations.router, prefix="/organizations", tags=["organizations"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(invitations.router, prefix="/invitations", tags=["invitations"])
api_router.include_router(risks.router, prefix="/risks", tags=["risks"])
api_router.include_router(incidents.router, prefix="/incidents", tags=["incidents"])
api_router.include_router(kri.router, prefix="/kri", tags=["kri"])
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
api_router.include_router(version.router, tags=["version"])

from fastapi import APIRouter

from provisioning.api.v1.endpoints import providers

router = APIRouter()

router.include_router(providers.router)

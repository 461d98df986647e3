from fastapi import APIRouter

from .proxy.route import router as proxy_router

router = APIRouter()


@router.get("/.well-known/optimizer/health", include_in_schema=False)
async def health():
    return {"status": "ok"}


# The proxy catch-all must stay last so it does not shadow the routes above
router.include_router(proxy_router)

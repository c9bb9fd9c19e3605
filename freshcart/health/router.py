from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from freshcart.health.service import health_supabase_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root(request: Request):
    return {"ok": True, "gateway": request.app.state.gateway.name}

@router.get("/supabase")
async def health_supabase():
    return JSONResponse(await health_supabase_info())

from fastapi import APIRouter

from agui_host.api.routers.agent import router as agent_router

api_router = APIRouter()
api_router.include_router(agent_router)

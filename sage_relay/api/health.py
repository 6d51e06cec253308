"""
Health API routes - 健康检查与运行信息
"""
import logging
from datetime import datetime

from fastapi import APIRouter, Request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    """服务健康检查：运行状态与当前会话数"""
    store = request.app.state.store
    return {
        "status": "Sage Relay Running",
        "activeSessions": store.count(),
        "timestamp": datetime.now().isoformat(),
    }


@router.get("/info")
async def system_info(request: Request):
    """返回运行配置与会话统计"""
    settings = request.app.state.settings
    stats = request.app.state.store.get_statistics()
    return {
        "facilitator_name": settings.FACILITATOR_NAME,
        "generation_provider": settings.GENERATION_PROVIDER,
        "generation_configured": request.app.state.generation_client.is_configured(),
        "pause_blocks_messages": settings.PAUSE_BLOCKS_MESSAGES,
        "connections": request.app.state.hub.connection_count,
        "pending_tasks": request.app.state.scheduler.total_pending(),
        **stats,
    }

"""
간단한 Redis 기반 레이트 리밋 유틸리티
"""

from __future__ import annotations

import logging
import time

from fastapi import HTTPException, Request, status

from charsheet.core.config import settings
from charsheet.core.database import redis_client

logger = logging.getLogger(__name__)


async def check_rate_limit(bucket: str, max_requests: int, window_seconds: int = 60) -> tuple[bool, int]:
    """
    고정 윈도우 방식 레이트리밋.
    반환: (허용 여부, 남은 횟수)
    """
    now = int(time.time())
    window = now // window_seconds
    key = f"rl:{bucket}:{window}"
    # INCR 및 만료 설정
    try:
        count = await redis_client.incr(key)
        if count == 1:
            await redis_client.expire(key, window_seconds)
        remaining = max(0, max_requests - count)
        return (count <= max_requests, remaining)
    except Exception as e:
        # Redis 장애 시 리밋을 우회(가용성 우선)
        logger.warning(f"레이트리밋 우회 (redis 오류): {e}")
        return (True, max_requests)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request, action: str, max_requests: int) -> None:
    """요청 IP 기준 분당 제한. 초과 시 429"""
    if not settings.RATE_LIMIT_ENABLED:
        return
    allowed, _ = await check_rate_limit(f"{action}:{client_ip(request)}", max_requests)
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again later",
        )

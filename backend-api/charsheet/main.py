"""
캐릭터 시트 API - FastAPI 메인 애플리케이션
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging

from charsheet.core.config import settings
from charsheet.core.database import engine, Base, test_db_connection
from charsheet import models  # noqa: F401  테이블 메타데이터 등록

from charsheet.api.auth import router as auth_router
from charsheet.api.characters import router as characters_router
from charsheet.api.admin import router as admin_router

# 로깅 설정
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 시작/종료 시 실행되는 이벤트"""
    logger.info("🚀 캐릭터 시트 API 시작")

    # 데이터베이스 테이블 생성 (개발용)
    if settings.ENVIRONMENT != "production":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("📊 데이터베이스 테이블 생성 완료")

    yield

    await engine.dispose()
    logger.info("👋 캐릭터 시트 API 종료")


# FastAPI 앱 생성
app = FastAPI(
    title="Character Sheet API",
    description="TTRPG 캐릭터 시트 저장/공유 API",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan
)

# CORS 미들웨어 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# 에러 응답은 모두 {"error": ...} 형태
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        detail = "Method not allowed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Internal server error: {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# 라우터 등록
app.include_router(auth_router, prefix="/auth", tags=["인증"])
app.include_router(characters_router, prefix="/characters", tags=["캐릭터"])
app.include_router(admin_router, prefix="/admin", tags=["관리"])


@app.get("/health")
async def health_check():
    """헬스 체크 엔드포인트"""
    return {
        "status": "OK",
        "environment": settings.ENVIRONMENT,
        "database": "connected" if await test_db_connection() else "unavailable",
    }


# 브라우저 프리플라이트가 아닌 OPTIONS 요청도 200
@app.options("/{rest_of_path:path}", include_in_schema=False)
async def preflight(rest_of_path: str):
    return Response(status_code=status.HTTP_200_OK)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "charsheet.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development"
    )

"""
애플리케이션 설정
"""

from pydantic_settings import BaseSettings
from typing import Optional, List
from pathlib import Path
from dotenv import load_dotenv


"""env 로딩 우선순위
1) OS 환경변수
2) 프로젝트 루트의 .env (repo/.env)
3) backend-api 디렉터리의 .env (repo/backend-api/.env)
"""

_DEFAULT_JWT_SECRET = "change-this-charsheet-jwt-secret"

# .env 사전 로드 (OS 환경변수 우선, override=False)
_here = Path(__file__).resolve()
_repo_root_env = _here.parents[3] / ".env"  # repo/.env
_backend_env = _here.parents[2] / ".env"    # backend-api/.env
for _p in (_repo_root_env, _backend_env):
    if _p.exists():
        load_dotenv(dotenv_path=str(_p), override=False)


class Settings(BaseSettings):
    """애플리케이션 설정"""
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    DATABASE_URL: str = "sqlite+aiosqlite:///./data/charsheet.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # JWT (7일 만료)
    JWT_SECRET_KEY: str = _DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    BCRYPT_ROUNDS: int = 12

    # 비밀번호 재설정
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    # 이메일/SMTP
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    EMAIL_FROM_ADDRESS: str = "no-reply@charsheet.local"
    EMAIL_FROM_NAME: str = "Character Sheet"
    FRONTEND_BASE_URL: str = "http://localhost:5173"

    # 캐릭터 저장 이력 보존 개수 (auto 저장만 정리)
    AUTO_SAVE_RETENTION: int = 10

    # 레이트 리밋 (분당)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_LOGIN_PER_MINUTE: int = 10
    RATE_LIMIT_FORGOT_PER_MINUTE: int = 5

    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()


# 환경별 설정 검증
def validate_settings(target: Optional[Settings] = None):
    """설정 검증"""
    target = target or settings
    if target.ENVIRONMENT == "production":
        if target.JWT_SECRET_KEY == _DEFAULT_JWT_SECRET:
            raise ValueError("프로덕션 환경에서는 JWT_SECRET_KEY를 변경해야 합니다.")
    if target.AUTO_SAVE_RETENTION < 1:
        raise ValueError("AUTO_SAVE_RETENTION은 1 이상이어야 합니다.")
    return True


# 설정 검증 실행
validate_settings()

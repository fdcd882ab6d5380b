"""
이메일 발송 서비스
"""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import smtplib
import ssl
import asyncio
import logging

from charsheet.core.config import settings


logger = logging.getLogger(__name__)


def build_reset_url(token: str) -> str:
    return f"{settings.FRONTEND_BASE_URL}/reset-password?token={token}"


def _build_password_reset_email(reset_url: str) -> tuple[str, str, str]:
    """재설정 메일 제목/텍스트/HTML 생성"""
    valid_minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES
    subject = f"[{settings.EMAIL_FROM_NAME}] Password reset"
    text = (
        "We received a request to reset your password.\n\n"
        f"Open this link to choose a new one:\n{reset_url}\n\n"
        f"The link expires in {valid_minutes} minutes. "
        "If you did not ask for this, you can ignore this email."
    )
    html = f"""
    <div style="font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; color:#111;">
      <h2>Password reset</h2>
      <p>We received a request to reset your password.</p>
      <p>
        <a href="{reset_url}" style="display:inline-block;padding:12px 16px;background:#7c3aed;color:#fff;text-decoration:none;border-radius:8px;">Reset password</a>
      </p>
      <p><a href="{reset_url}">{reset_url}</a></p>
      <p style="color:#dc2626;font-weight:600;">The link expires in {valid_minutes} minutes.</p>
    </div>
    """
    return subject, text, html


def _send_email_sync(to_email: str, subject: str, text: str, html: str) -> None:
    """동기 SMTP 전송 (스레드 풀에서 실행)"""
    if not settings.SMTP_HOST:
        # 개발 환경: 실제 발송 없이 로그로 대체
        logger.info("[DEV] 이메일 미발송 (SMTP 미설정) → 제목: %s, 수신자: %s", subject, to_email)
        return

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"
    msg["To"] = to_email
    msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))

    context = ssl.create_default_context()
    if settings.SMTP_USE_SSL:
        with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, context=context) as server:
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.sendmail(settings.EMAIL_FROM_ADDRESS, [to_email], msg.as_string())
    else:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            if settings.SMTP_USE_TLS:
                server.starttls(context=context)
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.sendmail(settings.EMAIL_FROM_ADDRESS, [to_email], msg.as_string())


async def send_password_reset_email(to_email: str, token: str) -> None:
    """비밀번호 재설정 메일 발송 (비동기)"""
    subject, text, html = _build_password_reset_email(build_reset_url(token))
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, _send_email_sync, to_email, subject, text, html)

"""
캐릭터 API 클라이언트
/auth, /characters 엔드포인트 래퍼
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
import backoff

from .errors import RemoteError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class RemoteRepository:
    """서버 캐릭터 저장소 (aiohttp)

    네트워크 오류만 재시도한다. 4xx/5xx 응답은 RemoteError(status) 로 바로 올린다.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "RemoteRepository":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _headers(self, auth: bool = True) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if auth and self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientConnectionError, asyncio.TimeoutError),
        max_tries=3,
        max_time=30,
    )
    async def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        auth: bool = True,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        async with session.request(
            method,
            url,
            json=payload,
            params=params,
            headers=self._headers(auth),
            timeout=self.timeout,
        ) as resp:
            try:
                body = await resp.json(content_type=None)
            except ValueError:
                body = {"error": await resp.text()}
            if resp.status >= 400:
                message = body.get("error") if isinstance(body, dict) else None
                logger.debug(f"API error {resp.status} {method} {path}: {message}")
                raise RemoteError(message or f"HTTP {resp.status}", status=resp.status)
            return body if isinstance(body, dict) else {}

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        auth: bool = True,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """재시도 후에도 네트워크 오류면 RemoteError(status=None)"""
        try:
            return await self._send(method, path, payload, auth=auth, params=params)
        except asyncio.TimeoutError:
            logger.debug(f"API timeout {method} {path}")
            raise RemoteError(f"Request timeout after {self.timeout.total}s")
        except aiohttp.ClientError as e:
            logger.debug(f"API connection error {method} {path}: {e}")
            raise RemoteError(f"Connection failed: {e}")

    # --- 인증 ----------------------------------------------------------------

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """로그인 후 토큰 보관"""
        data = await self._request("POST", "/auth/login", {"email": email, "password": password}, auth=False)
        self.token = data.get("token")
        return data

    async def register(self, email: str, password: str, username: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/auth/register",
            {"email": email, "password": password, "username": username},
            auth=False,
        )

    # --- 캐릭터 --------------------------------------------------------------

    async def list_characters(self) -> Dict[str, Any]:
        """{characters: [...], activeCharacterId}"""
        return await self._request("GET", "/characters")

    async def get_character(self, character_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/characters/{character_id}")
        return data["character"]

    async def create_character(
        self,
        name: str,
        character_data: Optional[Dict[str, Any]] = None,
        set_as_active: bool = True,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": name, "setAsActive": set_as_active}
        if character_data is not None:
            payload["characterData"] = character_data
        data = await self._request("POST", "/characters", payload)
        return data["character"]

    async def update_character(
        self,
        character_id: str,
        name: Optional[str] = None,
        character_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if name is not None:
            payload["name"] = name
        if character_data is not None:
            payload["characterData"] = character_data
        data = await self._request("PUT", f"/characters/{character_id}", payload)
        return data["character"]

    async def autosave(self, character_id: str, character_data: Dict[str, Any]) -> Dict[str, Any]:
        """자동 저장 (문서 교체 + auto 이력)"""
        data = await self._request(
            "POST",
            "/characters",
            {"characterId": character_id, "characterData": character_data},
        )
        return data["character"]

    async def set_shared(self, character_id: str, is_shared: bool) -> Dict[str, Any]:
        data = await self._request("PUT", f"/characters/{character_id}", {"isShared": is_shared})
        return data["character"]

    async def delete_character(self, character_id: str) -> None:
        await self._request("DELETE", f"/characters/{character_id}")

    async def get_active(self) -> Optional[Dict[str, Any]]:
        """활성 캐릭터 (없으면 None)"""
        try:
            data = await self._request("GET", "/characters/active")
        except RemoteError as e:
            if e.status == 404:
                return None
            raise
        return data["character"]

    async def set_active(self, character_id: str) -> Dict[str, Any]:
        data = await self._request("POST", "/characters/active", {"characterId": character_id})
        return data["character"]

    async def get_shared(self, share_token: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/characters/shared/{share_token}", auth=False)
        return data["character"]

    async def list_saves(self, character_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"/characters/{character_id}/saves", params={"limit": limit})
        return data.get("saves", [])

"""
Bubble Workflow API Adapter

Бэкенд клуба реализован на Bubble.io, бронирование доступно через
workflow endpoints: {base}/api/1.1/wf/<workflow>.

Особенности:
- Bearer токен в заголовке Authorization
- Ответ завернут в {"status": "success", "response": {...}}
- Ошибка приложения (слот занят) приходит внутри 2xx: {"response": {"error": "..."}}
- Домен может отвечать редиректом (например, на www.)
"""

import asyncio
import httpx
from typing import Any, Dict, List, Optional
import structlog
from pydantic import ValidationError

from ..base import (
    BaseAvailabilityGateway,
    BackendClientError,
    BackendUnavailableError,
    GatewayError,
    SlotTakenError,
)
from shared.models.booking import BookingRequest, Slot, UserProfile, to_backend_date
from shared.utils.text import mask_phone

logger = structlog.get_logger(__name__)

REDIRECT_STATUSES = {301, 302, 303, 307, 308}
WORKFLOW_PATH = "/api/1.1/wf"


def normalize_base_url(raw: Optional[str]) -> str:
    """
    Приводит base URL к виду https://host/api/1.1/wf

    Args:
        raw: URL из настроек (с протоколом или без, с путем workflow или без)
    """
    base = (raw or "").strip()
    if not base:
        return ""
    base = base.rstrip("/")
    lowered = base.lower()
    if lowered.startswith("http://"):
        base = "https://" + base[len("http://"):]
    elif not lowered.startswith("https://"):
        base = "https://" + base
    if base.lower().endswith(WORKFLOW_PATH):
        base = base[: -len(WORKFLOW_PATH)]
    return f"{base.rstrip('/')}{WORKFLOW_PATH}"


class BubbleGateway(BaseAvailabilityGateway):
    """
    Адаптер для Bubble workflow API

    Все запросы идут через _request: до max_attempts попыток с
    экспоненциальным backoff на сетевых ошибках и 5xx, без повторов на 4xx,
    редирект проходится ровно один раз.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        confirm_endpoint: str = "confirm_reserva",
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_base_delay: float = 0.1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs
    ):
        """
        Args:
            base_url: Base URL приложения Bubble
            token: Bearer токен
            confirm_endpoint: Workflow подтверждения брони
            timeout: Таймаут запроса в секундах
            max_attempts: Максимум попыток на запрос
            retry_base_delay: Задержка перед второй попыткой (удваивается)
            transport: Кастомный httpx транспорт (для тестов)
        """
        super().__init__(normalize_base_url(base_url), token, **kwargs)

        self.confirm_endpoint = confirm_endpoint.strip("/")
        self.max_attempts = max(1, max_attempts)
        self.retry_base_delay = retry_base_delay

        # HTTP client
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers=self._get_headers(),
            follow_redirects=False,
            transport=transport
        )

        logger.info(
            "bubble_gateway_initialized",
            base_url=self.base_url,
            confirm_endpoint=self.confirm_endpoint,
            has_token=bool(self.token)
        )

    def _get_headers(self) -> Dict[str, str]:
        """Формирование заголовков для запросов"""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict] = None,
        json: Optional[Dict] = None
    ) -> httpx.Response:
        """Один запрос с однократным переходом по редиректу"""
        response = await self.client.request(method, url, params=params, json=json)
        location = response.headers.get("location")
        if response.status_code in REDIRECT_STATUSES and location:
            redirected = str(response.request.url.join(location))
            logger.info("backend_redirect_followed", status_code=response.status_code, location=redirected)
            response = await self.client.request(method, redirected, params=params, json=json)
        return response

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict] = None,
        json: Optional[Dict] = None
    ) -> Dict[str, Any]:
        """
        Выполнение запроса к API с повторами

        Returns:
            JSON тело ответа

        Raises:
            BackendClientError: 4xx или повторный редирект
            BackendUnavailableError: Сеть, таймаут, 5xx после всех попыток
        """
        url = self._build_url(path)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self._send(method, url, params=params, json=json)

                if response.status_code in REDIRECT_STATUSES:
                    raise BackendClientError(
                        f"Unexpected redirect from {path}",
                        status_code=response.status_code
                    )
                response.raise_for_status()

                try:
                    return response.json()
                except ValueError as e:
                    raise BackendUnavailableError(f"Invalid JSON from {path}") from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if 400 <= status_code < 500:
                    logger.error("backend_client_error", status_code=status_code, path=path)
                    raise BackendClientError(
                        f"Backend rejected {path} with {status_code}",
                        status_code=status_code
                    ) from e
                last_error = e
            except httpx.HTTPError as e:
                last_error = e

            if attempt < self.max_attempts:
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "backend_retry",
                    path=path,
                    attempt=attempt,
                    delay=delay,
                    error=str(last_error)
                )
                await asyncio.sleep(delay)

        logger.error("backend_request_failed", path=path, attempts=self.max_attempts, error=str(last_error))
        raise BackendUnavailableError(f"Backend unavailable for {path}: {last_error}") from last_error

    # ============================================
    # ОПЕРАЦИИ
    # ============================================

    async def get_user(self, phone: str) -> UserProfile:
        """Профиль пользователя по телефону"""
        data = await self._request("GET", "/get_user", params={"phone": phone})
        payload = data.get("response") if isinstance(data, dict) else None
        if not isinstance(payload, dict):
            return UserProfile(found=False)

        profile = UserProfile(
            found=bool(payload.get("found")),
            name=payload.get("name") or None,
            last_name=payload.get("last_name") or None,
            id=str(payload["id"]) if payload.get("id") else None
        )
        logger.info("backend_user_loaded", phone=mask_phone(phone), found=profile.found)
        return profile

    async def get_available_slots(
        self,
        sport: str,
        date_str: str,
        current_hour: int = 0
    ) -> List[Slot]:
        """Свободные слоты на дату"""
        data = await self._request(
            "GET",
            "/get_hours",
            params={
                "sport": sport,
                "date": to_backend_date(date_str),
                "current_time_number": current_hour,
            }
        )
        response = data.get("response") if isinstance(data, dict) else None
        hours = (response or {}).get("hours") or []

        slots = []
        for item in hours:
            if not isinstance(item, dict):
                continue
            try:
                slots.append(Slot.model_validate(item))
            except ValidationError:
                logger.debug("backend_slot_skipped", item=item)

        logger.info("backend_slots_loaded", sport=sport, date=date_str, count=len(slots))
        return slots

    async def _post_booking(self, payload: Dict[str, Any]) -> dict:
        data = await self._request("POST", f"/{self.confirm_endpoint}", json=payload)
        response = data.get("response") if isinstance(data, dict) else None
        if isinstance(response, dict) and response.get("error"):
            raise SlotTakenError(str(response["error"]))
        return data if isinstance(data, dict) else {}

    async def create_booking(self, request: BookingRequest) -> dict:
        """
        Подтвердить бронь

        Если запрос с ID пользователя не прошел (кроме "слот занят"),
        повторяется один раз без поля user.
        """
        try:
            result = await self._post_booking(request.to_payload(include_user=True))
        except SlotTakenError:
            logger.warning(
                "booking_slot_taken",
                phone=mask_phone(request.phone),
                date=request.date,
                times=request.times
            )
            raise
        except GatewayError as e:
            if not request.backend_user_id:
                logger.error("booking_failed", phone=mask_phone(request.phone), error=str(e))
                raise
            logger.warning(
                "booking_retry_without_user",
                phone=mask_phone(request.phone),
                error=str(e)
            )
            result = await self._post_booking(request.to_payload(include_user=False))

        logger.info(
            "booking_confirmed",
            phone=mask_phone(request.phone),
            sport=request.sport,
            date=request.date,
            times=request.times,
            court=request.court
        )
        return result

    def get_backend_name(self) -> str:
        return "Bubble"

    async def close(self):
        await self.client.aclose()

"""
스쿼드 멤버십 조회

멤버 수와 멤버 여부는 외부 스쿼드 서비스가 소유합니다. 챌린지의 필요 표 수
(votes_needed)와 투표 자격 확인에 사용됩니다.
"""

from __future__ import annotations

import abc
import logging
from typing import Dict, Iterable, Optional, Set

import httpx

from squadapi.config import Settings
from squadapi.core.exceptions import MembershipServiceError

logger = logging.getLogger(__name__)


class SquadMembershipProvider(abc.ABC):
    """스쿼드 멤버십 조회 인터페이스"""

    @abc.abstractmethod
    def member_count(self, squad_id: str) -> int:
        ...

    @abc.abstractmethod
    def is_member(self, squad_id: str, user_id: str) -> bool:
        ...


class HttpSquadMembershipClient(SquadMembershipProvider):
    """스쿼드 서비스 HTTP 클라이언트

    - GET /squads/{squad_id}/members/count -> {"count": int}
    - GET /squads/{squad_id}/members/{user_id} -> 200 (멤버) / 404 (비멤버)

    타임아웃, 전송 오류, 5xx 응답은 MembershipServiceError 로 변환됩니다.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._base_url = settings.SQUAD_SERVICE_URL.rstrip("/")
        self._timeout = httpx.Timeout(settings.SQUAD_SERVICE_TIMEOUT_SECONDS, connect=5.0)
        self._api_key = settings.SQUAD_SERVICE_API_KEY
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["X-API-Key"] = self._api_key
        return headers

    def _get(self, path: str) -> httpx.Response:
        try:
            with httpx.Client(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = client.get(path, headers=self._headers())
        except httpx.TimeoutException as exc:
            logger.warning("Squad service timeout: %s", path)
            raise MembershipServiceError(
                "Squad service timed out", details={"path": path}
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("Squad service request error: %s", exc)
            raise MembershipServiceError(details={"path": path}) from exc

        if response.status_code >= 500:
            logger.error(
                "Squad service error %s for %s: %s",
                response.status_code,
                path,
                response.text[:200],
            )
            raise MembershipServiceError(
                details={"path": path, "status_code": response.status_code}
            )
        return response

    def member_count(self, squad_id: str) -> int:
        response = self._get(f"/squads/{squad_id}/members/count")
        if response.status_code == 404:
            return 0
        try:
            response.raise_for_status()
            return int(response.json()["count"])
        except (httpx.HTTPStatusError, KeyError, TypeError, ValueError) as exc:
            raise MembershipServiceError(
                "Unexpected squad service response",
                details={"squad_id": squad_id, "status_code": response.status_code},
            ) from exc

    def is_member(self, squad_id: str, user_id: str) -> bool:
        response = self._get(f"/squads/{squad_id}/members/{user_id}")
        if response.status_code == 404:
            return False
        if response.status_code == 200:
            return True
        raise MembershipServiceError(
            "Unexpected squad service response",
            details={"squad_id": squad_id, "status_code": response.status_code},
        )


class StaticSquadMembership(SquadMembershipProvider):
    """메모리 기반 멤버십 (테스트, 로컬 실행용)"""

    def __init__(self, squads: Optional[Dict[str, Iterable[str]]] = None):
        self._squads: Dict[str, Set[str]] = {
            squad_id: set(members) for squad_id, members in (squads or {}).items()
        }

    def add_member(self, squad_id: str, user_id: str) -> None:
        self._squads.setdefault(squad_id, set()).add(user_id)

    def member_count(self, squad_id: str) -> int:
        return len(self._squads.get(squad_id, ()))

    def is_member(self, squad_id: str, user_id: str) -> bool:
        return user_id in self._squads.get(squad_id, ())

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from templebuddy.transport import build_upstream_client

BASE_URL = "https://scheduling.test/api"


class FakeUpstream:
    """Routes requests by (method, path) and remembers every request it saw.

    A route answers with an httpx.Response, or with plain data that is sent
    back as a 200 JSON body. Callables get the request.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []

    def route(self, method: str, path: str, answer: Any) -> None:
        self.routes[(method, path)] = answer

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get((request.method, request.url.path))
        if answer is None:
            return httpx.Response(404, json={"error": "no route"})
        if callable(answer):
            answer = answer(request)
        if isinstance(answer, httpx.Response):
            # Routes may answer many requests; hand out a fresh response each time.
            return httpx.Response(answer.status_code, headers=answer.headers, content=answer.content)
        return httpx.Response(200, json=answer)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def upstream_client(self) -> httpx.AsyncClient:
        return build_upstream_client(
            base_url=BASE_URL,
            session_cookie="SESSION=abc",
            timeout_seconds=5,
            transport=httpx.MockTransport(self.handler),
        )

    def plain_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content)


class FakeTempleSite:
    """A scheduling site with a few temples and a per-session current temple."""

    def __init__(
        self,
        upstream: FakeUpstream,
        temples: dict[Any, dict[str, Any]],
        *,
        schedulable: list[Any] | None = None,
        current: Any = None,
    ) -> None:
        self.upstream = upstream
        self.temples = temples
        self.schedulable = list(temples) if schedulable is None else schedulable
        self.current = current
        self.set_temple_history: list[Any] = []

        upstream.route("GET", "/api/templeConfig/findAllOnlineSchedulingStatuses", self._statuses)
        upstream.route("GET", "/api/templeInfo", self._current)
        upstream.route("POST", "/api/templeInfo/setTemple", self._set_temple)
        upstream.route("GET", "/maps/api/geocode/json", self._geocode)
        for org_id in temples:
            upstream.route("GET", f"/api/templeInfo/getTempleTitanImage/{org_id}", self._image(org_id))

    def _statuses(self, request: httpx.Request) -> list[dict[str, Any]]:
        rows = [{"templeOrgId": org_id, "onlineSchedulingAvailable": True} for org_id in self.schedulable]
        rows.append({"templeOrgId": 999, "onlineSchedulingAvailable": False})
        return rows

    def _current(self, request: httpx.Request) -> Any:
        if self.current is None:
            return httpx.Response(401)
        return {"templeOrgId": self.current, "templeName": self.temples[self.current]["name"]}

    def _temple_key(self, org_id: Any) -> Any:
        # The site answers for 101 and "101" alike, and always names a temple by its own key.
        for key in self.temples:
            if str(key) == str(org_id):
                return key
        return None

    def _set_temple(self, request: httpx.Request) -> Any:
        org_id = json_body(request)["orgId"]
        self.set_temple_history.append(org_id)
        key = self._temple_key(org_id)
        temple = self.temples.get(key)
        if temple is None or temple.get("fail_detail"):
            return httpx.Response(500)
        self.current = key
        return {
            "templeOrgId": temple.get("echo_id", key),
            "templeName": temple["name"],
            "primaryAddress": temple["address"],
        }

    def _geocode(self, request: httpx.Request) -> Any:
        address = request.url.params.get("address")
        for temple in self.temples.values():
            if temple["address"] == address:
                if temple.get("location") is None:
                    return {"status": "ZERO_RESULTS", "results": []}
                lat, lng = temple["location"]
                return {"status": "OK", "results": [{"geometry": {"location": {"lat": lat, "lng": lng}}}]}
        return {"status": "ZERO_RESULTS", "results": []}

    def _image(self, org_id: Any) -> Callable[[httpx.Request], Any]:
        def answer(request: httpx.Request) -> Any:
            return {"url": f"https://img.test/{org_id}.jpg"}

        return answer

    def detail_calls_for(self, org_id: Any) -> int:
        return sum(1 for posted in self.set_temple_history if str(posted) == str(org_id))


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_site(upstream: FakeUpstream) -> Callable[..., FakeTempleSite]:
    def factory(temples: dict[Any, dict[str, Any]], **kwargs: Any) -> FakeTempleSite:
        return FakeTempleSite(upstream, temples, **kwargs)

    return factory

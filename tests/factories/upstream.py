"""Fake lookup services behind `httpx.MockTransport`."""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx

Handler = Callable[[httpx.Request], Any]


class FakeUpstream:
    """Routes httpx requests to per-host handlers and records every call.

    A handler receives the `httpx.Request` and returns either an
    `httpx.Response` or a JSON-serializable body (served with 200). It may
    also raise an httpx exception. Hosts without a handler refuse the
    connection.
    """

    def __init__(self):
        self.handlers: Dict[str, Handler] = {}
        self.calls: List[httpx.Request] = []

    def route(self, host: str, handler: Handler) -> None:
        self.handlers[host] = handler

    def json(self, host: str, body: Any, status_code: int = 200) -> None:
        self.route(host, lambda request: httpx.Response(status_code, json=body))

    def fail(self, host: str, status_code: int = 503) -> None:
        self.route(host, lambda request: httpx.Response(status_code, json={"error": "unavailable"}))

    def sequence(self, host: str, *responses: Any) -> None:
        """Serve the given responses in order, repeating the last one."""
        remaining = list(responses)

        def handler(request: httpx.Request) -> Any:
            result = remaining.pop(0) if len(remaining) > 1 else remaining[0]
            if isinstance(result, Exception):
                raise result
            return result

        self.route(host, handler)

    def calls_to(self, host: str) -> List[httpx.Request]:
        return [request for request in self.calls if request.url.host == host]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler: Optional[Handler] = self.handlers.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError(f"no route to {request.url.host}", request=request)
        result = handler(request)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, content=json.dumps(result).encode(), headers={"Content-Type": "application/json"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

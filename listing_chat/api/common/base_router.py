from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter

from listing_chat.api.common.decorators import handle_route_errors, log_route_call

Endpoint = Callable[..., Any]
ResponseDocs = Dict[int, Dict[str, Any]]

# Documented on every JSON route so clients see the service error mapping
COMMON_ERROR_RESPONSES: ResponseDocs = {
    400: {"description": "Invalid request for the current state"},
    401: {"description": "Not authenticated"},
    403: {"description": "Caller is not a participant"},
    404: {"description": "Conversation not found"},
    409: {"description": "Concurrent creation did not settle"},
    503: {"description": "Data store temporarily unavailable"},
}


class BaseRouter:
    """
    Wraps an APIRouter so every JSON endpoint gets the shared error
    translation, call logging, tags and documented error responses.
    """

    def __init__(
        self,
        router: APIRouter,
        default_tags: Optional[List[str]] = None,
        default_responses: Optional[ResponseDocs] = None,
    ):
        self.router = router
        self.default_tags = list(default_tags or [])
        self.default_responses = dict(
            COMMON_ERROR_RESPONSES if default_responses is None else default_responses
        )

    def get(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:
        return self._register(path, "GET", **kwargs)

    def post(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:
        return self._register(path, "POST", **kwargs)

    def websocket(self, path: str, **kwargs: Any) -> Callable[[Endpoint], Endpoint]:
        """
        Registers a WebSocket endpoint as is.

        HTTP error translation does not apply once the socket is accepted, so
        the endpoint closes the socket with its own codes instead.
        """

        def decorator(endpoint: Endpoint) -> Endpoint:
            self.router.add_api_websocket_route(path, endpoint, **kwargs)
            return endpoint

        return decorator

    def _register(
        self,
        path: str,
        method: str,
        *,
        tags: Optional[List[str]] = None,
        responses: Optional[ResponseDocs] = None,
        **kwargs: Any,
    ) -> Callable[[Endpoint], Endpoint]:
        route_tags = sorted(set(self.default_tags + list(tags or [])))
        route_responses = {**self.default_responses, **(responses or {})}

        def decorator(endpoint: Endpoint) -> Endpoint:
            self.router.add_api_route(
                path,
                log_route_call(handle_route_errors(endpoint)),
                methods=[method],
                tags=route_tags,
                responses=route_responses,
                **kwargs,
            )
            return endpoint

        return decorator

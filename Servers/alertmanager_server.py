# alertmanager_server.py
# Alertmanager tool provider speaking the JSON-RPC provider contract:
#   GET  /health        liveness
#   POST /              tools/list, tools/call
# List tools are paginated (count/offset) and every call passes a token bucket.

from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI, Request
from mcp import McpError, types
from pydantic import BaseModel, Field, ValidationError

from mcp_chat.pagination import paginate_results, validate_pagination_params
from mcp_chat.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, ""))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, ""))
    except ValueError:
        return default


# ----------------------------
# Config
# ----------------------------
DEFAULT_SILENCE_PAGE = _env_int("ALERTMANAGER_DEFAULT_SILENCE_PAGE", 10)
MAX_SILENCE_PAGE = _env_int("ALERTMANAGER_MAX_SILENCE_PAGE", 50)
DEFAULT_ALERT_PAGE = _env_int("ALERTMANAGER_DEFAULT_ALERT_PAGE", 10)
MAX_ALERT_PAGE = _env_int("ALERTMANAGER_MAX_ALERT_PAGE", 25)
DEFAULT_ALERT_GROUP_PAGE = _env_int("ALERTMANAGER_DEFAULT_ALERT_GROUP_PAGE", 3)
MAX_ALERT_GROUP_PAGE = _env_int("ALERTMANAGER_MAX_ALERT_GROUP_PAGE", 5)

RATE_LIMIT_RPS = _env_float("MCP_RATE_LIMIT_RPS", 5.0)
RATE_LIMIT_BURST = _env_int("MCP_RATE_LIMIT_BURST", 10)

REQUEST_TIMEOUT_SECONDS = 60.0


class AlertmanagerError(Exception):
    """Upstream Alertmanager request failed."""


# ----------------------------
# Upstream client (Alertmanager v2 API)
# ----------------------------
class AlertmanagerClient:
    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        tenant_id: str = "",
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if tenant_id:
            headers["X-Scope-OrgId"] = tenant_id
        auth = httpx.BasicAuth(username, password) if username and password else None
        self._http = http_client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS, auth=auth, headers=headers)

    async def _get(self, path: str, params: dict[str, str] | None = None) -> Any:
        try:
            response = await self._http.get(f"{self.base_url}{path}", params=params)
        except httpx.HTTPError as e:
            raise AlertmanagerError(f"request to {path} failed: {e}") from e

        if response.status_code != httpx.codes.OK:
            raise AlertmanagerError(f"unexpected status code: {response.status_code}, body: {response.text}")
        return response.json()

    @staticmethod
    def _state_params(silenced: bool | None, inhibited: bool | None, active: bool | None) -> dict[str, str]:
        params: dict[str, str] = {}
        if silenced is not None:
            params["silenced"] = str(silenced).lower()
        if inhibited is not None:
            params["inhibited"] = str(inhibited).lower()
        # Alertmanager returns only active alerts unless told otherwise
        params["active"] = "true" if active is None else str(active).lower()
        return params

    async def get_status(self) -> dict[str, Any]:
        return await self._get("/api/v2/status")

    async def list_alerts(
        self,
        filter: str = "",
        silenced: bool | None = None,
        inhibited: bool | None = None,
        active: bool | None = None,
    ) -> list[dict[str, Any]]:
        params = self._state_params(silenced, inhibited, active)
        if filter:
            params["filter"] = filter
        return await self._get("/api/v2/alerts", params) or []

    async def get_alert_groups(
        self,
        silenced: bool | None = None,
        inhibited: bool | None = None,
        active: bool | None = None,
    ) -> list[dict[str, Any]]:
        return await self._get("/api/v2/alerts/groups", self._state_params(silenced, inhibited, active)) or []

    async def list_silences(self, filter: str = "") -> list[dict[str, Any]]:
        return await self._get("/api/v2/silences", {"filter": filter} if filter else None) or []

    async def get_receivers(self) -> list[dict[str, Any]]:
        return await self._get("/api/v2/receivers") or []

    async def close(self) -> None:
        await self._http.aclose()


# ----------------------------
# Tool arguments
# ----------------------------
class AlertStateArgs(BaseModel):
    silenced: bool | None = None
    inhibited: bool | None = None
    active: bool | None = None


class GetAlertsArgs(AlertStateArgs):
    filter: str = ""
    count: int = Field(default_factory=lambda: DEFAULT_ALERT_PAGE)
    offset: int = 0


class GetAlertGroupsArgs(AlertStateArgs):
    count: int = Field(default_factory=lambda: DEFAULT_ALERT_GROUP_PAGE)
    offset: int = 0


class GetSilencesArgs(BaseModel):
    filter: str = ""
    count: int = Field(default_factory=lambda: DEFAULT_SILENCE_PAGE)
    offset: int = 0


def _page_schema(noun: str, default: int, maximum: int, extra: str = "") -> dict[str, Any]:
    return {
        "count": {
            "type": "integer",
            "description": f"Number of {noun} to return per page (default: {default}, max: {maximum}).{extra}",
            "default": default,
            "minimum": 1,
            "maximum": maximum,
        },
        "offset": {
            "type": "integer",
            "description": (
                f"Number of {noun} to skip before returning results (default: 0). To paginate through all "
                f"results, make multiple calls with increasing offset values (e.g. offset=0, offset={default}, "
                f"offset={default * 2})"
            ),
            "default": 0,
            "minimum": 0,
        },
    }


_STATE_SCHEMA: dict[str, Any] = {
    "silenced": {"type": "boolean", "description": "If true, include silenced alerts"},
    "inhibited": {"type": "boolean", "description": "If true, include inhibited alerts"},
    "active": {"type": "boolean", "description": "If true, include active alerts"},
}

_FILTER_SCHEMA: dict[str, Any] = {
    "filter": {"type": "string", "description": "Filtering query (e.g. alertname=~'.*CPU.*')"},
}


def build_tools() -> list[types.Tool]:
    return [
        types.Tool(
            name="get_status",
            description="Get current status of an Alertmanager instance and its cluster",
            inputSchema={"type": "object", "properties": {}},
        ),
        types.Tool(
            name="get_alerts",
            description="Get a list of alerts currently in Alertmanager",
            inputSchema={
                "type": "object",
                "properties": {
                    **_FILTER_SCHEMA,
                    **_STATE_SCHEMA,
                    **_page_schema("alerts", DEFAULT_ALERT_PAGE, MAX_ALERT_PAGE),
                },
            },
        ),
        types.Tool(
            name="get_alert_groups",
            description="Get a list of alert groups",
            inputSchema={
                "type": "object",
                "properties": {
                    **_STATE_SCHEMA,
                    **_page_schema(
                        "alert groups",
                        DEFAULT_ALERT_GROUP_PAGE,
                        MAX_ALERT_GROUP_PAGE,
                        " Alert groups can be large as they contain all alerts within the group.",
                    ),
                },
            },
        ),
        types.Tool(
            name="get_silences",
            description="Get list of all silences",
            inputSchema={
                "type": "object",
                "properties": {
                    **_FILTER_SCHEMA,
                    **_page_schema("silences", DEFAULT_SILENCE_PAGE, MAX_SILENCE_PAGE),
                },
            },
        ),
        types.Tool(
            name="get_receivers",
            description="Get list of all receivers (name of notification integrations)",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


# ----------------------------
# Tool handlers
# ----------------------------
def _text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=is_error)


class AlertmanagerTools:
    def __init__(self, client: AlertmanagerClient, limiter: RateLimiter):
        self.client = client
        self.limiter = limiter
        self.tools = build_tools()

    async def call(self, name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        if not self.limiter.allow():
            logger.warning("Rate limit exceeded for tool %s", name)
            return _text_result("rate limit exceeded", is_error=True)

        try:
            return _text_result(await self._dispatch(name, arguments))
        except ValidationError as e:
            return _text_result(f"error: invalid arguments: {e}", is_error=True)
        except (McpError, AlertmanagerError) as e:
            return _text_result(f"error: {e}", is_error=True)

    async def _dispatch(self, name: str, arguments: dict[str, Any]) -> str:
        if name == "get_status":
            return json.dumps(await self.client.get_status())
        if name == "get_receivers":
            return json.dumps(await self.client.get_receivers())
        if name == "get_alerts":
            args = GetAlertsArgs.model_validate(arguments)
            count, offset = validate_pagination_params(args.count, args.offset, MAX_ALERT_PAGE)
            alerts = await self.client.list_alerts(args.filter, args.silenced, args.inhibited, args.active)
            return paginate_results(alerts, count, offset).model_dump_json()
        if name == "get_alert_groups":
            args = GetAlertGroupsArgs.model_validate(arguments)
            count, offset = validate_pagination_params(args.count, args.offset, MAX_ALERT_GROUP_PAGE)
            groups = await self.client.get_alert_groups(args.silenced, args.inhibited, args.active)
            return paginate_results(groups, count, offset).model_dump_json()
        if name == "get_silences":
            args = GetSilencesArgs.model_validate(arguments)
            count, offset = validate_pagination_params(args.count, args.offset, MAX_SILENCE_PAGE)
            silences = await self.client.list_silences(args.filter)
            return paginate_results(silences, count, offset).model_dump_json()

        raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=f"unknown tool: {name}"))


# ----------------------------
# JSON-RPC app
# ----------------------------
def _rpc_error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def create_app(tools: AlertmanagerTools) -> FastAPI:
    app = FastAPI(title="Alertmanager MCP Server")

    @app.get("/health")
    async def health():  # type: ignore
        return {"status": "ok"}

    @app.post("/")
    async def rpc(request: Request):  # type: ignore
        try:
            body = await request.json()
        except ValueError:
            return _rpc_error(None, types.PARSE_ERROR, "invalid JSON")

        if not isinstance(body, dict):
            return _rpc_error(None, types.INVALID_REQUEST, "request must be a JSON object")

        request_id = body.get("id")
        method = body.get("method")
        params = body.get("params") or {}
        if not isinstance(params, dict):
            return _rpc_error(request_id, types.INVALID_REQUEST, "params must be a JSON object")

        if method == "tools/list":
            result = types.ListToolsResult(tools=tools.tools)
            return {"jsonrpc": "2.0", "id": request_id, "result": result.model_dump(mode="json", exclude_none=True)}

        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str) or not name:
                return _rpc_error(request_id, types.INVALID_PARAMS, "tool name is required")
            if name not in {tool.name for tool in tools.tools}:
                return _rpc_error(request_id, types.INVALID_PARAMS, f"unknown tool: {name}")

            arguments = params.get("arguments") or {}
            if not isinstance(arguments, dict):
                return _rpc_error(request_id, types.INVALID_PARAMS, "arguments must be a JSON object")

            logger.info("→ tools/call %s", name)
            result = await tools.call(name, arguments)
            return {"jsonrpc": "2.0", "id": request_id, "result": result.model_dump(mode="json", exclude_none=True)}

        return _rpc_error(request_id, types.METHOD_NOT_FOUND, f"method not found: {method}")

    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    url = os.getenv("ALERTMANAGER_URL")
    if not url:
        raise SystemExit("ALERTMANAGER_URL environment variable is not set")

    client = AlertmanagerClient(
        url,
        username=os.getenv("ALERTMANAGER_USERNAME", ""),
        password=os.getenv("ALERTMANAGER_PASSWORD", ""),
        tenant_id=os.getenv("ALERTMANAGER_TENANT", ""),
    )
    limiter = RateLimiter(RATE_LIMIT_RPS, RATE_LIMIT_BURST)
    logger.info("Rate limit: %s requests/s, burst %s", RATE_LIMIT_RPS, RATE_LIMIT_BURST)

    app = create_app(AlertmanagerTools(client, limiter))
    uvicorn.run(app, host=os.getenv("ALERTMANAGER_MCP_HOST", "0.0.0.0"), port=_env_int("ALERTMANAGER_MCP_PORT", 9300))


if __name__ == "__main__":
    main()

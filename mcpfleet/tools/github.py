"""
GitHub tool server: issue creation, repository search and content listing
against the GitHub REST API.
"""

import time
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from mcpfleet.core.config import FleetConfig, GitHubConfig
from mcpfleet.mcp.protocol import ToolExecutionError
from mcpfleet.mcp.router import Tool
from mcpfleet.mcp.server import ToolServer
from mcpfleet.mcp.utils import optional_str, optional_str_list, require_str
from mcpfleet.version import __version__

from .definitions import GITHUB_TOOLS_SCHEMAS, schema_for

logger = logging.getLogger("MCPFleet.tools.github")

SERVER_NAME = "github-server"
ERROR_PREFIX = "GitHub API error"
SORT_CHOICES = ("stars", "forks", "updated")


class GitHubClient:
    """Thin synchronous GitHub REST client on a shared requests session."""

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
        max_retries: int = 2,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"mcpfleet-github-server/{__version__}",
        })

    def close(self) -> None:
        self._session.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.api_url}{path}"
        # Only reads are retried on connection failures.
        retries = self.max_retries if method.upper() == "GET" else 0

        last_err: Optional[Exception] = None
        for attempt in range(retries + 1):
            try:
                resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
                break
            except (requests.ConnectionError, requests.Timeout) as e:
                last_err = e
                if attempt < retries:
                    time.sleep(0.5 * (attempt + 1))
                continue
        else:
            raise ToolExecutionError(f"Request to {url} failed: {last_err}")

        if resp.status_code >= 400:
            raise ToolExecutionError(self._error_message(resp))
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ToolExecutionError(f"Invalid JSON response from {url}") from exc

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        message = None
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message")
        except ValueError:
            pass
        if not message:
            message = resp.reason or "request failed"
        return f"{message} (HTTP {resp.status_code})"

    def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        labels: Optional[List[str]] = None,
    ) -> Any:
        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels is not None:
            payload["labels"] = labels
        return self._request(
            "POST",
            f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/issues",
            json=payload,
        )

    def search_repos(self, query: str, sort: str = "stars", per_page: int = 10) -> Any:
        return self._request(
            "GET",
            "/search/repositories",
            params={"q": query, "sort": sort, "per_page": per_page},
        )

    def list_repo_contents(self, owner: str, repo: str, path: str = "") -> Any:
        return self._request(
            "GET",
            f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/contents/{quote(path.strip('/'))}",
        )


def _per_page(arguments: Dict[str, Any]) -> int:
    value = arguments.get("per_page", 10)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
        raise ToolExecutionError("'per_page' must be an integer")
    value = int(value)
    if not 1 <= value <= 100:
        raise ToolExecutionError("'per_page' must be between 1 and 100")
    return value


def build_github_tools(client: GitHubClient) -> List[Tool]:
    def create_issue(arguments: Dict[str, Any]) -> Any:
        body = arguments.get("body")
        if not isinstance(body, str):
            raise ToolExecutionError("'body' is required and must be a string")
        return client.create_issue(
            owner=require_str(arguments, "owner"),
            repo=require_str(arguments, "repo"),
            title=require_str(arguments, "title"),
            body=body,
            labels=optional_str_list(arguments, "labels"),
        )

    def search_repos(arguments: Dict[str, Any]) -> Any:
        sort = optional_str(arguments, "sort", "stars")
        if sort not in SORT_CHOICES:
            raise ToolExecutionError(f"'sort' must be one of {', '.join(SORT_CHOICES)}")
        return client.search_repos(
            query=require_str(arguments, "query"),
            sort=sort,
            per_page=_per_page(arguments),
        )

    def list_repo_contents(arguments: Dict[str, Any]) -> Any:
        return client.list_repo_contents(
            owner=require_str(arguments, "owner"),
            repo=require_str(arguments, "repo"),
            path=optional_str(arguments, "path", ""),
        )

    handlers = {
        "create_issue": create_issue,
        "search_repos": search_repos,
        "list_repo_contents": list_repo_contents,
    }
    tools = []
    for name, handler in handlers.items():
        schema = schema_for(GITHUB_TOOLS_SCHEMAS, name)
        tools.append(Tool(
            name=name,
            description=schema["description"],
            handler=handler,
            input_schema=schema["inputSchema"],
        ))
    return tools


def build_github_server(
    config: Optional[FleetConfig] = None,
    client: Optional[GitHubClient] = None,
    **server_kwargs,
) -> ToolServer:
    """Create the github tool server; fails fast when no token is configured."""
    config = config or FleetConfig.from_env()
    if client is None:
        gh: GitHubConfig = config.github
        if not gh.token:
            raise RuntimeError("GITHUB_TOKEN environment variable is required")
        client = GitHubClient(gh.token, api_url=gh.api_url, timeout=gh.timeout)

    return ToolServer(
        SERVER_NAME,
        __version__,
        build_github_tools(client),
        error_prefix=ERROR_PREFIX,
        max_workers=config.tool_server.max_workers,
        queue_limit=config.tool_server.queue_limit,
        response_max_chars=config.tool_server.response_max_chars,
        **server_kwargs,
    )

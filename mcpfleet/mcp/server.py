import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict, Any, Iterable

from .protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    JSONRPC_METHOD_KINDS,
    SERVER_BUSY,
    McpError,
    MethodNotFound,
    InvalidParams,
    RequestKind,
    negotiate_protocol_version,
)
from .router import RequestRouter, Tool, ToolInvoker
from .transport import LineTransport
from .utils import DEFAULT_TOOL_RESPONSE_MAX_CHARS

logger = logging.getLogger("MCPFleet.mcp.server")


class ToolServer:
    """
    Serves a fixed tool table over a line transport with thread-pooled dispatching.

    Two request shapes are understood on the same stream:

    - native: ``{"kind": "invoke-tool", "tool": ..., "arguments": {...}, "id": ...}``
    - JSON-RPC 2.0 as sent by MCP hosts: ``initialize``, ``ping``,
      ``tools/list`` and ``tools/call``.

    Responses are written as workers finish, so they may leave in a different
    order than requests arrived. Callers correlate them by ``id``.
    """

    def __init__(
        self,
        name: str,
        version: str,
        tools: Iterable[Tool],
        *,
        error_prefix: str = "Tool error",
        max_workers: int = 8,
        queue_limit: Optional[int] = None,
        response_max_chars: int = DEFAULT_TOOL_RESPONSE_MAX_CHARS,
        transport: Optional[LineTransport] = None,
    ):
        self.name = name
        self.version = version
        self.max_workers = max(1, max_workers)
        self.queue_limit = max(self.max_workers, queue_limit or self.max_workers * 8)
        self.transport = transport if transport is not None else LineTransport()

        self.invoker = ToolInvoker(tools, error_prefix=error_prefix, max_chars=response_max_chars)
        self.router = RequestRouter()
        self.router.register(RequestKind.ENUMERATE_TOOLS, self.invoker.enumerate_tools)
        self.router.register(RequestKind.INVOKE_TOOL, self.invoker)

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._queue_semaphore = threading.BoundedSemaphore(self.queue_limit)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    @staticmethod
    def is_jsonrpc(msg: Dict[str, Any]) -> bool:
        return "kind" not in msg and ("jsonrpc" in msg or "method" in msg)

    @staticmethod
    def expects_reply(msg: Dict[str, Any]) -> bool:
        # JSON-RPC notifications carry no id and are never answered.
        if ToolServer.is_jsonrpc(msg):
            return "id" in msg
        return True

    def handle_message(self, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Compute the response for one decoded message.

        Returns None when no reply is due. Protocol failures are answered
        with an error object; anything else escapes to the dispatch guard.
        """
        if self.is_jsonrpc(msg):
            return self._handle_jsonrpc(msg)
        return self._handle_native(msg)

    def _handle_native(self, msg: Dict[str, Any]) -> Dict[str, Any]:
        kind = msg.get("kind")
        try:
            if kind is None:
                raise McpError("Request is missing 'kind'", INVALID_REQUEST)
            result = self.router.dispatch(kind, msg)
        except McpError as exc:
            return self._error_response(msg, exc)

        response = dict(result) if isinstance(result, dict) else {"result": result}
        if "id" in msg:
            response["id"] = msg["id"]
        return response

    def _handle_jsonrpc(self, msg: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        method = msg.get("method")
        if "id" not in msg:
            logger.debug("Ignoring notification: %s", method)
            return None

        params = msg.get("params")
        if params is None:
            params = {}
        try:
            if not isinstance(method, str):
                raise McpError("Request is missing 'method'", INVALID_REQUEST)
            if not isinstance(params, dict):
                raise InvalidParams(f"{method} params must be an object")
            result = self._call_jsonrpc_method(method, params)
        except McpError as exc:
            return self._error_response(msg, exc)
        return {"jsonrpc": "2.0", "id": msg["id"], "result": result}

    def _call_jsonrpc_method(self, method: str, params: Dict[str, Any]) -> Any:
        if method == "initialize":
            return {
                "protocolVersion": negotiate_protocol_version(params.get("protocolVersion")),
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.name, "version": self.version},
            }
        if method == "ping":
            return {}

        kind = JSONRPC_METHOD_KINDS.get(method)
        if kind is None:
            raise MethodNotFound(f"Method not found: {method}")
        if kind is RequestKind.INVOKE_TOOL:
            request = {"tool": params.get("name"), "arguments": params.get("arguments")}
            return self.router.dispatch(kind, request)
        return self.router.dispatch(kind, params)

    def _error_response(self, msg: Dict[str, Any], exc: McpError) -> Dict[str, Any]:
        if self.is_jsonrpc(msg):
            return {"jsonrpc": "2.0", "id": msg.get("id"), "error": exc.to_dict()}
        response: Dict[str, Any] = {"error": exc.to_dict()}
        if "id" in msg:
            response["id"] = msg["id"]
        return response

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix=f"{self.name}-dispatch",
                )
            return self._executor

    def submit_dispatch(self, msg: Dict[str, Any]) -> bool:
        """Submit a message for background dispatch if a slot is available."""
        if not self._queue_semaphore.acquire(blocking=False):
            logger.warning("Dispatch queue full (%d); rejecting request", self.queue_limit)
            if self.expects_reply(msg):
                busy = McpError("Server is busy; retry later.", SERVER_BUSY)
                self.transport.send(self._error_response(msg, busy))
            return False

        try:
            future = self.get_executor().submit(self._dispatch_guarded, msg)
        except Exception:
            self._queue_semaphore.release()
            raise

        future.add_done_callback(lambda f: self._queue_semaphore.release())
        return True

    def _dispatch_guarded(self, msg: Dict[str, Any]) -> None:
        try:
            response = self.handle_message(msg)
        except Exception:
            logger.exception("Unexpected error during request dispatch")
            if self.expects_reply(msg) and not self.transport.closed:
                internal = McpError("Internal error during request dispatch.", INTERNAL_ERROR)
                self.transport.send(self._error_response(msg, internal))
            return
        if response is not None:
            self.transport.send(response)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def serve(self) -> None:
        """Read and dispatch messages until end of input, then drain and close."""
        logger.info("%s %s serving %d tools", self.name, self.version, len(self.invoker.tool_names))
        try:
            while True:
                msg = self.transport.read_message()
                if msg is None:
                    break
                self.submit_dispatch(msg)
        except KeyboardInterrupt:
            logger.info("%s interrupted", self.name)
            self.stop(wait=False)
            return
        self.stop(wait=True)

    def stop(self, wait: bool = True) -> None:
        """Shut down the dispatcher, then close the transport."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=not wait)
        self.transport.close()
        logger.info("%s stopped", self.name)

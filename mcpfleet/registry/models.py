"""
MCP Fleet Registry Models
-------------------------
Pydantic models for server definitions, their observed status and the
default seed dataset.

Wire serialisation uses the MCP host settings field names (``autoApprove``,
``lastError``); use ``model_dump(by_alias=True)``.
"""

import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

SNAPSHOT_PREFIX = "settings-"
SNAPSHOT_SUFFIX = ".json"
SNAPSHOT_NAME_PATTERN = re.compile(r"^settings-[A-Za-z0-9._:-]+\.json$")


class ServerState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class ServerConfig(BaseModel):
    """
    How to launch one tool server. Keyed externally by its registry name.

    Keys the host settings format carries beyond the declared fields
    (``alwaysAllow``, ``timeout``, ...) are kept as-is and written back by
    ``to_wire()``.
    """
    model_config = {"populate_by_name": True, "extra": "allow"}

    command: str = Field(min_length=1, description="Executable to launch")
    args: List[str] = Field(default_factory=list, description="Ordered command-line arguments")
    env: Optional[Dict[str, str]] = Field(default=None, description="Extra environment variables")
    disabled: bool = False
    auto_approve: Optional[List[str]] = Field(
        default=None,
        alias="autoApprove",
        description="Tool names the host may call without confirmation",
    )

    def to_wire(self) -> Dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ServerConfigPatch(BaseModel):
    """
    Partial ServerConfig for shallow-merge updates.

    Only fields present in the input take part in the merge. Required
    ServerConfig fields may be omitted but not set to null.
    """
    model_config = {"populate_by_name": True, "extra": "forbid"}

    command: Optional[str] = Field(default=None, min_length=1)
    args: Optional[List[str]] = None
    env: Optional[Dict[str, str]] = None
    disabled: Optional[bool] = None
    auto_approve: Optional[List[str]] = Field(default=None, alias="autoApprove")

    @field_validator("command", "args", "disabled")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v

    def changes(self) -> Dict:
        return self.model_dump(exclude_unset=True)


class ServerStatus(BaseModel):
    """Observed state of a server as last reported to the registry."""
    model_config = {"populate_by_name": True}

    name: str
    status: ServerState
    last_error: Optional[str] = Field(default=None, alias="lastError")
    tools: List[str] = Field(default_factory=list)

    def to_wire(self) -> Dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


DEFAULT_GIT_REPOSITORY = str(Path.home() / "repo")

DEFAULT_SERVERS: Dict[str, ServerConfig] = {
    "search-server": ServerConfig(
        command="mcpfleet",
        args=["search-server"],
        env={},
        disabled=False,
    ),
    "git-server": ServerConfig(
        command="docker",
        args=[
            "run",
            "--rm",
            "-i",
            "--mount",
            f"type=bind,src={DEFAULT_GIT_REPOSITORY},dst=/repo",
            "mcp/git",
            "--repository",
            "/repo",
        ],
        disabled=False,
        auto_approve=["git_create_branch", "git_diff_staged"],
    ),
}


def is_snapshot_name(name: str) -> bool:
    return bool(SNAPSHOT_NAME_PATTERN.match(name))

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


ALL_SERVERS = "all"


class Server(BaseModel):
    """
    Directory entry. Static for the whole session; `name` is the unique key.
    Older backends served PascalCase keys, both spellings are accepted.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, validation_alias=AliasChoices("name", "Name"))
    host: str = Field(..., validation_alias=AliasChoices("host", "Host"))
    user: str = Field("", validation_alias=AliasChoices("user", "User"))
    port: int = Field(22, ge=0, le=65535, validation_alias=AliasChoices("port", "Port"))


def _alias(camel: str, pascal: str) -> Dict[str, Any]:
    return {"validation_alias": AliasChoices(camel, pascal), "serialization_alias": camel}


class ServerReport(BaseModel):
    """
    Metrics produced for one server by a completed run.
    Canonical wire casing is camelCase; the historical PascalCase keys are accepted too.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    server_name: str = Field(..., min_length=1, **_alias("serverName", "ServerName"))
    server_host: str = Field("", **_alias("serverHost", "ServerHost"))
    is_online: bool = Field(False, **_alias("isOnline", "IsOnline"))
    error: str = Field("", **_alias("error", "Error"))
    cache_cleared: bool = Field(False, **_alias("cacheCleared", "CacheCleared"))
    cpu_usage_percent: float = Field(0.0, ge=0.0, **_alias("cpuUsage", "CPUUsage"))
    mem_total_mb: int = Field(0, ge=0, **_alias("memTotalMB", "MemTotalMB"))
    mem_used_mb: int = Field(0, ge=0, **_alias("memUsedMB", "MemUsedMB"))
    mem_free_mb: int = Field(0, ge=0, **_alias("memFreeMB", "MemFreeMB"))
    swap_total_mb: int = Field(0, ge=0, **_alias("swapTotalMB", "SwapTotalMB"))
    swap_used_mb: int = Field(0, ge=0, **_alias("swapUsedMB", "SwapUsedMB"))
    swap_free_mb: Optional[int] = Field(None, ge=0, **_alias("swapFreeMB", "SwapFreeMB"))
    top_processes: str = Field("", **_alias("topProcesses", "TopProcesses"))
    timestamp: Optional[str] = Field(None, **_alias("timestamp", "Timestamp"))

    @model_validator(mode="after")
    def _used_within_total(self) -> "ServerReport":
        # An offline server reports zeros everywhere; only check when a total is known.
        if self.mem_total_mb > 0 and self.mem_used_mb > self.mem_total_mb:
            raise ValueError(f"memUsedMB {self.mem_used_mb} exceeds memTotalMB {self.mem_total_mb}")
        if self.swap_total_mb > 0 and self.swap_used_mb > self.swap_total_mb:
            raise ValueError(f"swapUsedMB {self.swap_used_mb} exceeds swapTotalMB {self.swap_total_mb}")
        return self

    @property
    def effective_swap_free_mb(self) -> int:
        if self.swap_free_mb is not None:
            return self.swap_free_mb
        return max(0, self.swap_total_mb - self.swap_used_mb)


class RunRequest(BaseModel):
    """
    Targets are either the sentinel "all" or an explicit, non-empty tuple of server names.
    """

    model_config = ConfigDict(frozen=True)

    targets: Union[Literal["all"], Tuple[str, ...]]

    @model_validator(mode="after")
    def _non_empty(self) -> "RunRequest":
        if self.targets != ALL_SERVERS and len(self.targets) == 0:
            raise ValueError("explicit run targets must be non-empty")
        return self

    @property
    def is_all(self) -> bool:
        return self.targets == ALL_SERVERS

    def to_wire(self) -> Dict[str, Any]:
        # The backend recognises the sentinel as a one-element list.
        servers: List[str] = [ALL_SERVERS] if self.is_all else list(self.targets)
        return {"action": "run", "servers": servers}


class RunState(str, Enum):
    idle = "idle"
    in_flight = "in_flight"


class ConnectionState(str, Enum):
    connecting = "connecting"
    open = "open"
    closed = "closed"


@dataclass(frozen=True)
class RunRecord:
    run_id: str
    request: RunRequest
    started_at: datetime


@dataclass(frozen=True)
class Navigation:
    view: Literal["dashboard", "detail"] = "dashboard"
    server_name: Optional[str] = None

    @classmethod
    def dashboard(cls) -> "Navigation":
        return cls("dashboard", None)

    @classmethod
    def detail(cls, server_name: str) -> "Navigation":
        return cls("detail", server_name)

    @property
    def is_detail(self) -> bool:
        return self.view == "detail"

from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Chrome(BaseModel):
    """
    Parts of the surface shared by every view.
    """

    theme: Literal["light", "dark"] = "dark"
    log_panel_collapsed: bool = False
    log_lines: List[str] = Field(default_factory=list)
    connection: str = "closed"
    controls_enabled: bool = True


class ServerCard(BaseModel):
    name: str
    host: str
    user: str
    status: str
    selected: bool = False


class DashboardView(BaseModel):
    kind: Literal["dashboard"] = "dashboard"
    cards: List[ServerCard] = Field(default_factory=list)
    error: Optional[str] = None
    chrome: Chrome = Field(default_factory=Chrome)


class ChartSeries(BaseModel):
    label: str
    labels: List[str]
    values: List[float]


class DetailMetrics(BaseModel):
    online: bool
    status_label: str
    error: str = ""
    cpu_usage_percent: float
    mem_used_mb: int
    mem_total_mb: int
    mem_free_mb: int
    swap_used_mb: int
    swap_total_mb: int
    swap_free_mb: int
    cache_cleared: bool
    top_processes: str
    timestamp: Optional[str] = None
    cpu_chart: ChartSeries
    mem_chart: ChartSeries


class DetailView(BaseModel):
    kind: Literal["detail"] = "detail"
    server_name: str
    host: str
    port: int
    user: str
    # None means the last successful pull had no entry for this server.
    metrics: Optional[DetailMetrics] = None
    placeholder: Optional[str] = None
    chrome: Chrome = Field(default_factory=Chrome)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


View = Union[DashboardView, DetailView]

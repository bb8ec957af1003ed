from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from sentinel.errors import SentinelError
from sentinel.service.session import DashboardSession
from sentinel.settings import Settings
from sentinel.view.render import render_page_html

router = APIRouter()

_STATUS_FOR: Dict[str, int] = {
    "channel_unavailable": 409,
    "run_in_flight": 409,
    "invalid_run_targets": 400,
    "pull_failure": 502,
}


def _session(request: Request) -> DashboardSession:
    return request.app.state.session


def _error(e: SentinelError) -> JSONResponse:
    return JSONResponse({"ok": False, "error": e.code, "message": str(e)}, status_code=_STATUS_FOR.get(e.code, 400))


def _view_payload(session: DashboardSession) -> Dict[str, Any]:
    view = session.view
    return {
        "ok": True,
        "navigation": {"view": session.state.navigation.view, "server_name": session.state.navigation.server_name},
        "run_state": session.state.run_state.value,
        "view": view.model_dump(mode="json") if view is not None else None,
    }


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except Exception:  # noqa: BLE001
        body = {}
    return body if isinstance(body, dict) else {}


def create_app(settings: Settings | None = None, session: DashboardSession | None = None) -> FastAPI:
    """
    App factory used by the CLI and tests. The session starts with the app and stops with it.
    """
    s = settings or Settings()
    sess = session or DashboardSession(s)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await sess.start()
        try:
            yield
        finally:
            await sess.stop()

    app = FastAPI(title="Server Sentinel Dashboard", version="0.1.0", lifespan=lifespan)
    app.state.settings = s
    app.state.session = sess
    app.include_router(router)
    return app


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    session = _session(request)
    return {"ok": True, "version": "0.1.0", "channel": session.state.connection_state.value}


@router.get("/ui", response_class=HTMLResponse)
def ui(request: Request) -> HTMLResponse:
    return HTMLResponse(
        content=render_page_html(_session(request).view),
        headers={"Cache-Control": "no-store, max-age=0", "Pragma": "no-cache"},
    )


@router.get("/api/view")
def view(request: Request) -> JSONResponse:
    return JSONResponse(_view_payload(_session(request)))


@router.get("/api/events")
def events(request: Request, n: int = 500) -> JSONResponse:
    session = _session(request)
    entries = session.state.event_log.newest_first()[: max(1, min(n, 5000))]
    return JSONResponse(
        {
            "events": [
                {"seq": e.seq, "ts": e.ts.isoformat(), "level": e.level, "text": e.text, "display": e.display()}
                for e in entries
            ]
        }
    )


@router.get("/api/audit/recent")
def audit_recent(request: Request, n: int = 200) -> JSONResponse:
    records = _session(request).audit.recent(max(1, min(n, 2000)))
    return JSONResponse({"records": records})


@router.post("/actions/run")
async def action_run(request: Request) -> JSONResponse:
    session = _session(request)
    body = await _json_body(request)
    servers = body.get("servers", "all")
    try:
        if servers == "all":
            record = await session.run_all()
        elif servers == "selected":
            record = await session.run_selected()
        elif isinstance(servers, list) and all(isinstance(x, str) for x in servers):
            record = await session.runs.submit_run(servers)
        else:
            return JSONResponse({"ok": False, "error": "invalid_run_targets", "message": "servers must be 'all', 'selected' or a list of names"}, status_code=400)
    except SentinelError as e:
        return _error(e)
    return JSONResponse({"ok": True, "run_id": record.run_id, "servers": record.request.to_wire()["servers"]})


@router.post("/actions/run/single")
async def action_run_single(request: Request) -> JSONResponse:
    try:
        record = await _session(request).run_single()
    except SentinelError as e:
        return _error(e)
    return JSONResponse({"ok": True, "run_id": record.run_id, "servers": record.request.to_wire()["servers"]})


@router.post("/actions/run/reset")
def action_run_reset(request: Request) -> JSONResponse:
    try:
        abandoned = _session(request).abandon_run()
    except SentinelError as e:
        return _error(e)
    return JSONResponse({"ok": True, "abandoned": abandoned})


@router.post("/actions/select/{name:path}")
def action_select(request: Request, name: str) -> JSONResponse:
    session = _session(request)
    changed = session.select(name)
    payload = _view_payload(session)
    payload["changed"] = changed
    return JSONResponse(payload)


@router.post("/actions/back")
def action_back(request: Request) -> JSONResponse:
    session = _session(request)
    session.back()
    return JSONResponse(_view_payload(session))


@router.post("/actions/selection/{name:path}")
def action_selection(request: Request, name: str) -> JSONResponse:
    session = _session(request)
    changed = session.toggle_selection(name)
    return JSONResponse({"ok": True, "changed": changed, "selection": sorted(session.state.selection)})


@router.post("/actions/refresh")
async def action_refresh(request: Request) -> JSONResponse:
    session = _session(request)
    ok = await session.refresh()
    return JSONResponse({"ok": ok}, status_code=200 if ok else 502)


@router.post("/actions/theme")
async def action_theme(request: Request) -> JSONResponse:
    session = _session(request)
    body = await _json_body(request)
    session.set_theme(bool(body.get("light", not session.state.theme_light)))
    return JSONResponse({"ok": True, "theme": "light" if session.state.theme_light else "dark"})


@router.post("/actions/log-panel")
def action_log_panel(request: Request) -> JSONResponse:
    session = _session(request)
    session.toggle_log_panel()
    return JSONResponse({"ok": True, "collapsed": session.state.log_panel_collapsed})

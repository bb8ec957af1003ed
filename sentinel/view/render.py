from __future__ import annotations

import html
import json
from urllib.parse import quote

from sentinel.view.models import Chrome, DashboardView, DetailView, View


def _esc(value: object) -> str:
    return html.escape(str(value), quote=True)


def _name_path(name: str) -> str:
    # Server names are free text; "/", "?" and "#" must not change the action route.
    return quote(name, safe="")


def _button(label: str, action: str, *, body: dict | None = None, enabled: bool = True) -> str:
    payload = _esc(json.dumps(body or {}))
    disabled = "" if enabled else " disabled"
    return f'<button data-action="{_esc(action)}" data-body="{payload}"{disabled}>{_esc(label)}</button>'


def render_dashboard_html(view: DashboardView) -> str:
    enabled = view.chrome.controls_enabled
    parts = [
        '<div class="toolbar">',
        _button("Run All", "/actions/run", body={"servers": "all"}, enabled=enabled),
        _button("Run Selected", "/actions/run", body={"servers": "selected"}, enabled=enabled),
        "</div>",
    ]
    if view.error:
        parts.append(f'<p class="error">{_esc(view.error)}</p>')
    parts.append('<div class="cards">')
    for card in view.cards:
        checked = " checked" if card.selected else ""
        parts.append(
            f'<div class="card server-card" data-server-name="{_esc(card.name)}">'
            f'<div class="card-header"><h3><a href="#" data-action="/actions/select/{_esc(_name_path(card.name))}">{_esc(card.name)}</a></h3></div>'
            f'<div class="card-body"><p><strong>Host:</strong> {_esc(card.host)}</p>'
            f"<p><strong>User:</strong> {_esc(card.user)}</p></div>"
            f'<div class="card-footer"><input type="checkbox" data-action="/actions/selection/{_esc(_name_path(card.name))}"{checked}>'
            f'<label class="card-status">{_esc(card.status)}</label></div>'
            "</div>"
        )
    parts.append("</div>")
    return "\n".join(parts)


def render_detail_html(view: DetailView) -> str:
    enabled = view.chrome.controls_enabled
    parts = [
        '<div class="toolbar">',
        _button("Back to Dashboard", "/actions/back"),
        _button("Run Check", "/actions/run/single", enabled=enabled),
        "</div>",
        f"<h2>{_esc(view.server_name)}</h2>",
        f"<p><strong>Host:</strong> {_esc(view.address)}</p>",
        f"<p><strong>User:</strong> {_esc(view.user)}</p>",
    ]
    m = view.metrics
    if m is None:
        parts.append(f'<p class="placeholder">{_esc(view.placeholder or "")}</p>')
        return "\n".join(parts)
    parts.extend(
        [
            "<hr>",
            f"<p><strong>Status:</strong> {_esc(m.status_label)}</p>",
            f"<p><strong>CPU Usage:</strong> {m.cpu_usage_percent:.2f} %</p>",
            f"<p><strong>Memory:</strong> {m.mem_used_mb} MB Used / {m.mem_total_mb} MB Total ({m.mem_free_mb} MB Free)</p>",
            f"<p><strong>Swap:</strong> {m.swap_used_mb} MB Used / {m.swap_total_mb} MB Total ({m.swap_free_mb} MB Free)</p>",
            f"<p><strong>Cache Cleared:</strong> {'Yes' if m.cache_cleared else 'No'}</p>",
        ]
    )
    if m.error:
        parts.append(f'<p class="error"><strong>Error:</strong> {_esc(m.error)}</p>')
    if m.timestamp:
        parts.append(f"<p><strong>Collected:</strong> {_esc(m.timestamp)}</p>")
    parts.append(f"<p><strong>Top Processes:</strong></p><pre>{_esc(m.top_processes)}</pre>")
    for chart in (m.cpu_chart, m.mem_chart):
        parts.append(
            f'<div class="chart" data-label="{_esc(chart.label)}" '
            f'data-labels="{_esc(json.dumps(chart.labels))}" data-values="{_esc(json.dumps(chart.values))}"></div>'
        )
    return "\n".join(parts)


def _render_log_panel(chrome: Chrome) -> str:
    cls = "log-panel collapsed" if chrome.log_panel_collapsed else "log-panel"
    lines = "\n".join(_esc(ln) for ln in chrome.log_lines)
    return (
        f'<div class="{cls}">'
        f'{_button("Toggle Log", "/actions/log-panel")}'
        f'<pre id="logs">{lines}</pre>'
        "</div>"
    )


def render_page_html(view: View | None) -> str:
    if view is None:
        body = "<p>Loading...</p>"
        chrome = Chrome()
    elif isinstance(view, DetailView):
        body = render_detail_html(view)
        chrome = view.chrome
    else:
        body = render_dashboard_html(view)
        chrome = view.chrome
    body_cls = "light-mode" if chrome.theme == "light" else ""
    theme_toggle = _button("Light" if chrome.theme == "dark" else "Dark", "/actions/theme", body={"light": chrome.theme == "dark"})
    return f"""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <meta http-equiv="refresh" content="3" />
    <title>Server Sentinel</title>
    <style>
      body {{ font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto; margin: 16px; background: #0b1220; color: #e2e8f0; }}
      body.light-mode {{ background: #f8fafc; color: #0f172a; }}
      .cards {{ display: flex; gap: 12px; flex-wrap: wrap; }}
      .card {{ border: 1px solid #1f2937; border-radius: 12px; padding: 12px; min-width: 220px; }}
      .toolbar {{ display: flex; gap: 8px; margin-bottom: 12px; }}
      .error {{ color: #f87171; }}
      .placeholder {{ color: #94a3b8; font-style: italic; }}
      .log-panel.collapsed pre {{ display: none; }}
      pre {{ background: #020617; color: #e5e7eb; padding: 12px; border-radius: 8px; overflow: auto; }}
      .pill {{ font-size: 12px; padding: 2px 8px; border-radius: 999px; background: #1f2937; }}
    </style>
  </head>
  <body class="{body_cls}">
    <div class="toolbar">
      <h1 style="margin:0">Server Sentinel</h1>
      <span class="pill">channel={_esc(chrome.connection)}</span>
      {theme_toggle}
    </div>
    {body}
    {_render_log_panel(chrome)}
    <script>
      document.querySelectorAll('[data-action]').forEach(el => {{
        el.addEventListener('click', async (e) => {{
          e.preventDefault();
          const body = el.dataset.body || '{{}}';
          const r = await fetch(el.dataset.action, {{ method: 'POST', headers: {{ 'Content-Type': 'application/json' }}, body }});
          if (!r.ok) {{
            const data = await r.json().catch(() => ({{}}));
            alert(data.message || ('Request failed: ' + r.status));
          }}
          location.reload();
        }});
      }});
    </script>
  </body>
</html>"""

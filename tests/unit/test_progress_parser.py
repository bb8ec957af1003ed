from __future__ import annotations

import json

from sentinel.protocol import EventKind, parse_progress_line


def test_tagged_line_yields_server_status() -> None:
    ev = parse_progress_line("[srv1] ✅ Server is online.")
    assert ev.kind == EventKind.server_status
    assert ev.server_name == "srv1"
    assert ev.text == "✅ Server is online."


def test_status_is_text_after_last_bracket() -> None:
    ev = parse_progress_line("[srv1] copying [tmp] done")
    assert ev.server_name == "srv1"
    assert ev.text == "done"


def test_first_bracket_group_names_the_server_even_mid_line() -> None:
    ev = parse_progress_line("note: [db-1] Pinging server...")
    assert ev.kind == EventKind.server_status
    assert ev.server_name == "db-1"
    assert ev.text == "Pinging server..."


def test_empty_brackets_are_not_a_server_tag() -> None:
    ev = parse_progress_line("[] something")
    assert ev.kind == EventKind.info
    assert ev.server_name is None


def test_tagged_completion_marker_keeps_server_status() -> None:
    ev = parse_progress_line("[srv1] 🏁 Process complete.")
    assert ev.kind == EventKind.run_complete
    assert ev.is_terminator
    assert ev.server_name == "srv1"
    assert ev.text == "🏁 Process complete."

    plain = parse_progress_line("🏁 Process complete.")
    assert plain.is_terminator
    assert plain.server_name is None


def test_custom_completion_marker() -> None:
    assert parse_progress_line("ALL DONE", completion_marker="ALL DONE").is_terminator
    assert not parse_progress_line("🏁 Process complete.", completion_marker="ALL DONE").is_terminator


def test_untagged_error_and_info_lines() -> None:
    err = parse_progress_line("❌ Invalid message format: bad json")
    assert err.kind == EventKind.error
    info = parse_progress_line("🚀 Starting health check process...")
    assert info.kind == EventKind.info
    assert info.text == "🚀 Starting health check process..."


def test_typed_envelope_is_preferred() -> None:
    raw = json.dumps({"kind": "server_status", "server": "srv2", "text": "done"})
    ev = parse_progress_line(raw)
    assert ev.kind == EventKind.server_status
    assert ev.server_name == "srv2"
    assert ev.text == "done"

    done = parse_progress_line(json.dumps({"kind": "run_complete"}))
    assert done.is_terminator


def test_envelope_without_server_degrades_to_info() -> None:
    ev = parse_progress_line(json.dumps({"kind": "server_status", "text": "orphan"}))
    assert ev.kind == EventKind.info
    assert ev.server_name is None


def test_unknown_json_is_treated_as_plain_text() -> None:
    ev = parse_progress_line('{"kind": "mystery"}')
    assert ev.kind == EventKind.info
    ev2 = parse_progress_line("{not json}")
    assert ev2.kind == EventKind.info

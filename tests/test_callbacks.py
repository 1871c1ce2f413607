from __future__ import annotations

import pytest

from core.callbacks import CallbackTable, build_default_table, pattern
from core.errors import MalformedCallbackParameter


class RecordingHandlers:
    """Any on_* attribute is a distinct handler tagged with its name."""

    def __getattr__(self, name: str):
        if not name.startswith("on_"):
            raise AttributeError(name)

        async def handler(*args):
            return name

        handler.tag = name
        return handler


def _table() -> CallbackTable:
    return build_default_table(RecordingHandlers())


def _route(table: CallbackTable, data: str):
    match = table.match(data)
    if match is None:
        return None
    return match.pattern.name, match.params


def test_default_table_order_is_pinned() -> None:
    assert _table().names() == [
        "file-restrictions-chat-check",
        "file-refresh",
        "file-delete",
        "file-delete-confirm",
        "file-restrictions",
        "file-restrictions-chat-toggle",
        "settings",
        "settings-long-ids",
        "settings-chats",
        "settings-chats-connect",
        "settings-chat-details",
        "settings-chat-delete",
        "settings-chat-delete-confirm",
    ]


@pytest.mark.parametrize(
    "data, expected",
    [
        ("file:42:restrictions:chat:check", ("file-restrictions-chat-check", (42,))),
        ("file:42:refresh", ("file-refresh", (42,))),
        ("file:42:delete", ("file-delete", (42,))),
        ("file:42:delete:confirm", ("file-delete-confirm", (42,))),
        ("file:42:restrictions", ("file-restrictions", (42,))),
        ("file:42:restrictions:chat-subscription:7:toggl", ("file-restrictions-chat-toggle", (42, 7))),
        ("file:42:restrictions:chat-subscription:7:toggle", ("file-restrictions-chat-toggle", (42, 7))),
        ("settings", ("settings", ())),
        ("settings:long-ids", ("settings-long-ids", ())),
        ("settings:channels-and-chats", ("settings-chats", ())),
        ("settings:channels-and-chats:connect", ("settings-chats-connect", ())),
        ("settings:channels-and-chats:9", ("settings-chat-details", (9,))),
        ("settings:channels-and-chats:9:delete", ("settings-chat-delete", (9,))),
        ("settings:channels-and-chats:9:delete:confirm", ("settings-chat-delete-confirm", (9,))),
    ],
)
def test_payload_routes_to_documented_handler(data: str, expected) -> None:
    assert _route(_table(), data) == expected


def test_matched_handler_is_the_bound_one() -> None:
    match = _table().match("file:1:refresh")
    assert match is not None
    assert match.pattern.handler.tag == "on_file_refresh"


def test_anchored_patterns_reject_extra_text() -> None:
    table = _table()
    assert table.match("file:1:refresh:now") is None
    assert table.match("xsettings") is None
    assert table.match("file:abc:refresh") is None
    assert table.match("") is None


def test_unanchored_toggle_matches_as_substring() -> None:
    # Regression guard: the toggle entry has no anchors and must keep
    # matching payloads with arbitrary prefixes and suffixes.
    table = _table()
    toggle = next(entry for entry in table.patterns if entry.name == "file-restrictions-chat-toggle")
    assert not toggle.anchored
    assert _route(table, "menu/file:3:restrictions:chat-subscription:5:toggle:v2") == (
        "file-restrictions-chat-toggle",
        (3, 5),
    )


def test_reordering_disjoint_patterns_keeps_routing() -> None:
    handlers = RecordingHandlers()
    refresh = pattern("file-refresh", r"^file:(\d+):refresh$", handlers.on_file_refresh)
    delete = pattern("file-delete", r"^file:(\d+):delete$", handlers.on_file_delete)
    forward = CallbackTable([refresh, delete])
    backward = CallbackTable([delete, refresh])

    for data in ("file:1:refresh", "file:1:delete", "file:1:other"):
        assert _route(forward, data) == _route(backward, data)


def test_reordering_overlapping_patterns_changes_routing() -> None:
    handlers = RecordingHandlers()
    toggle = pattern(
        "file-restrictions-chat-toggle",
        r"file:(\d+):restrictions:chat-subscription:(\d+):toggl",
        handlers.on_file_restrictions_chat_toggle,
    )
    exact = pattern(
        "exact-toggle",
        r"^file:(\d+):restrictions:chat-subscription:(\d+):toggle$",
        handlers.on_exact_toggle,
    )
    data = "file:1:restrictions:chat-subscription:2:toggle"

    # The unanchored prefix entry shadows the more specific one placed after it.
    assert _route(CallbackTable([toggle, exact]), data) == ("file-restrictions-chat-toggle", (1, 2))
    assert _route(CallbackTable([exact, toggle]), data) == ("exact-toggle", (1, 2))


def test_non_integer_capture_is_an_error_not_a_fallthrough() -> None:
    handlers = RecordingHandlers()
    loose = pattern("loose", r"^file:(\w+):refresh$", handlers.on_loose)
    strict = pattern("strict", r"^file:(\w+):refresh$", handlers.on_strict)
    table = CallbackTable([loose, strict])

    with pytest.raises(MalformedCallbackParameter) as excinfo:
        table.match("file:abc:refresh")
    assert excinfo.value.pattern_name == "loose"


def test_duplicate_names_rejected() -> None:
    handlers = RecordingHandlers()
    entry = pattern("settings", r"^settings$", handlers.on_settings_menu)
    with pytest.raises(ValueError):
        CallbackTable([entry, entry])

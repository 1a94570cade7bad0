"""Tests for the message store and cursor pagination."""

import json
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from roomcast.db.session import Base
from roomcast.models import Message
from roomcast.services.errors import MessageNotFoundError, StorageUnavailableError
from roomcast.services.message_store import (
    FORMAT_MARKDOWN,
    MessageStore,
    normalize_cursor,
    normalize_limit,
)


def _fill(store: MessageStore, chat_key: str, count: int) -> list[int]:
    return [
        store.append("global", chat_key, "alice", f"message {index}").id
        for index in range(count)
    ]


def test_append_returns_strictly_increasing_ids(db_session) -> None:
    store = MessageStore(db_session)
    ids = _fill(store, "global", 5) + _fill(store, "favorite::alice", 3)
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


def test_concurrent_appends_to_one_key_get_unique_ordered_ids(tmp_path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'chat.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    writers, per_writer = 4, 25
    barrier = threading.Barrier(writers)
    results: dict[int, list[int]] = {}
    errors: list[Exception] = []

    def write(writer: int) -> None:
        try:
            with factory() as db:
                store = MessageStore(db)
                barrier.wait()
                results[writer] = [
                    store.append("global", "global", f"user{writer}", f"{writer}:{seq}").id
                    for seq in range(per_writer)
                ]
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=write, args=(writer,)) for writer in range(writers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    try:
        assert errors == []
        all_ids = [message_id for ids in results.values() for message_id in ids]
        assert len(all_ids) == writers * per_writer
        assert len(set(all_ids)) == len(all_ids)
        for ids in results.values():
            assert ids == sorted(ids)

        with factory() as db:
            page = MessageStore(db).get_page("global", limit=writers * per_writer)
        assert [m.id for m in page.messages] == sorted(all_ids)
        for writer in range(writers):
            seqs = [
                int(m.content.split(":")[1])
                for m in page.messages
                if m.sender == f"user{writer}"
            ]
            assert seqs == list(range(per_writer))
    finally:
        engine.dispose()


def test_append_keeps_meta_and_format(db_session) -> None:
    store = MessageStore(db_session)
    stored = store.append(
        "ai", "ai::alice::openai", "ChatGPT", "**hi**",
        format=FORMAT_MARKDOWN, meta={"provider": "openai", "modelUsed": "gpt"},
    )
    payload = stored.to_payload()
    assert payload["format"] == "markdown"
    assert payload["meta"] == {"provider": "openai", "modelUsed": "gpt"}
    assert payload["chatType"] == "ai"
    assert payload["createdAt"]


def test_append_without_meta_serializes_null(db_session) -> None:
    stored = MessageStore(db_session).append("global", "global", "alice", "hi")
    assert stored.to_payload()["meta"] is None
    assert stored.format == "plain"


def test_get_page_walks_history_without_gaps(db_session) -> None:
    store = MessageStore(db_session)
    ids = _fill(store, "global", 7)
    _fill(store, "favorite::bob", 2)

    first = store.get_page("global", limit=3)
    assert [m.id for m in first.messages] == ids[-3:]
    assert first.has_more is True

    second = store.get_page("global", before_id=first.messages[0].id, limit=3)
    assert [m.id for m in second.messages] == ids[-6:-3]
    assert second.has_more is True

    third = store.get_page("global", before_id=second.messages[0].id, limit=3)
    assert [m.id for m in third.messages] == ids[:1]
    assert third.has_more is False


def test_get_page_exact_fit_reports_no_more(db_session) -> None:
    store = MessageStore(db_session)
    _fill(store, "global", 3)
    page = store.get_page("global", limit=3)
    assert len(page.messages) == 3
    assert page.has_more is False


def test_get_page_of_unknown_key_is_empty(db_session) -> None:
    page = MessageStore(db_session).get_page("dm::nobody::somebody")
    assert page.messages == []
    assert page.to_payload() == {"messages": [], "hasMore": False}


def test_get_page_clamps_limit(db_session) -> None:
    store = MessageStore(db_session)
    _fill(store, "global", 5)
    page = store.get_page("global", limit="nonsense")
    assert len(page.messages) == 5
    assert page.has_more is False


def test_delete_by_id_returns_snapshot_and_removes_row(db_session) -> None:
    store = MessageStore(db_session)
    ids = _fill(store, "global", 3)

    removed = store.delete_by_id(ids[1])
    assert removed.id == ids[1]
    assert removed.chat_key == "global"
    assert [m.id for m in store.get_page("global").messages] == [ids[0], ids[2]]
    with pytest.raises(MessageNotFoundError):
        store.get(ids[1])


def test_delete_missing_message(db_session) -> None:
    with pytest.raises(MessageNotFoundError):
        MessageStore(db_session).delete_by_id(999_999)


def test_ids_are_not_reused_after_delete(db_session) -> None:
    store = MessageStore(db_session)
    last = _fill(store, "global", 2)[-1]
    store.delete_by_id(last)
    assert store.append("global", "global", "alice", "again").id > last


def test_undecodable_meta_reads_as_null(db_session) -> None:
    row = Message(chat_type="global", chat_key="global", sender="a", content="x", meta_json="{oops")
    db_session.add(row)
    db_session.commit()
    assert MessageStore(db_session).get(row.id).meta is None

    row.meta_json = json.dumps(["not", "a", "dict"])
    db_session.commit()
    assert MessageStore(db_session).get(row.id).meta is None


def test_storage_failure_is_wrapped(db_session, mocker) -> None:
    store = MessageStore(db_session)
    mocker.patch.object(db_session, "commit", side_effect=OperationalError("stmt", {}, Exception("down")))
    with pytest.raises(StorageUnavailableError):
        store.append("global", "global", "alice", "hi")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 80), ("abc", 80), (0, 80), (-4, 80), ("10", 10), (500, 200)],
)
def test_normalize_limit(raw, expected) -> None:
    assert normalize_limit(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, None), ("", None), ("0", None), ("x", None), ("42", 42), (7, 7)],
)
def test_normalize_cursor(raw, expected) -> None:
    assert normalize_cursor(raw) == expected

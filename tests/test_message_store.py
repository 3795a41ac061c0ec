import json

import pytest

from chatroom.services.errors import StorageError, ValidationError
from chatroom.services.message_store import (
    HISTORY_LIMIT,
    FileMessageStore,
    validate_message,
)


@pytest.mark.asyncio
async def test_append_assigns_id_and_lists_it(store):
    message = await store.append("alice", "hi")

    assert message.id == 1
    assert message.sender == "alice"
    assert message.body == "hi"
    assert message.created_at.tzinfo is not None

    recent = await store.list_recent(50)
    assert [(m.id, m.sender, m.body) for m in recent] == [(1, "alice", "hi")]


@pytest.mark.asyncio
async def test_blank_sender_is_rejected_and_nothing_stored(store):
    with pytest.raises(ValidationError) as exc_info:
        await store.append("", "hi")

    assert [(e.field, e.reason) for e in exc_info.value.errors] == [("sender", "blank")]
    assert await store.list_recent(50) == []


@pytest.mark.asyncio
async def test_body_over_500_chars_is_too_long(store):
    with pytest.raises(ValidationError) as exc_info:
        await store.append("alice", "x" * 501)

    assert [(e.field, e.reason) for e in exc_info.value.errors] == [("body", "too_long")]


@pytest.mark.asyncio
async def test_every_failing_field_is_reported(store):
    with pytest.raises(ValidationError) as exc_info:
        await store.append("   ", "y" * 600)

    assert exc_info.value.fields() == ["sender", "body"]
    assert [e.reason for e in exc_info.value.errors] == ["blank", "too_long"]


def test_validation_trims_and_measures_trimmed_length():
    assert validate_message("  bob ", " hello\n") == ("bob", "hello")
    # 20 visible chars padded with whitespace is still valid
    assert validate_message(" " + "n" * 20 + " ", "ok")[0] == "n" * 20

    with pytest.raises(ValidationError):
        validate_message("n" * 21, "ok")


def test_non_string_fields_are_blank():
    with pytest.raises(ValidationError) as exc_info:
        validate_message(None, 42)
    assert [(e.field, e.reason) for e in exc_info.value.errors] == [("sender", "blank"), ("body", "blank")]


@pytest.mark.asyncio
async def test_boundary_lengths_are_accepted(store):
    message = await store.append("a" * 20, "b" * 500)
    assert len(message.sender) == 20
    assert len(message.body) == 500


@pytest.mark.asyncio
async def test_list_recent_returns_newest_oldest_first_and_is_capped(store):
    for i in range(HISTORY_LIMIT + 10):
        await store.append("alice", f"msg {i}")

    recent = await store.list_recent(HISTORY_LIMIT)
    assert len(recent) == HISTORY_LIMIT
    assert recent[0].body == "msg 10"
    assert recent[-1].body == f"msg {HISTORY_LIMIT + 9}"

    # Asking for more than the cap never returns more than the cap
    assert len(await store.list_recent(1000)) == HISTORY_LIMIT
    assert [m.body for m in await store.list_recent(2)] == [f"msg {HISTORY_LIMIT + 8}", f"msg {HISTORY_LIMIT + 9}"]
    assert await store.list_recent(0) == []


@pytest.mark.asyncio
async def test_ids_and_timestamps_are_monotonic(store):
    messages = [await store.append("alice", str(i)) for i in range(20)]

    ids = [m.id for m in messages]
    assert ids == list(range(1, 21))
    stamps = [m.created_at for m in messages]
    assert stamps == sorted(stamps)


@pytest.mark.asyncio
async def test_failed_validation_does_not_consume_an_id(store):
    await store.append("alice", "one")
    with pytest.raises(ValidationError):
        await store.append("alice", "")
    message = await store.append("alice", "two")
    assert message.id == 2


# ============================================================================
# FILE STORE
# ============================================================================

@pytest.mark.asyncio
async def test_file_store_persists_across_restarts(tmp_path):
    path = str(tmp_path / "messages.jsonl")

    first = FileMessageStore(path)
    await first.append("alice", "hi")
    await first.append("bob", "hey")

    second = FileMessageStore(path)
    recent = await second.list_recent(50)
    assert [(m.id, m.sender, m.body) for m in recent] == [(1, "alice", "hi"), (2, "bob", "hey")]

    # Ids resume after the highest stored id
    third = await second.append("carol", "yo")
    assert third.id == 3

    with open(path, encoding="utf-8") as f:
        lines = [json.loads(line) for line in f]
    assert [line["id"] for line in lines] == [1, 2, 3]


@pytest.mark.asyncio
async def test_file_store_skips_corrupt_lines(tmp_path):
    path = tmp_path / "messages.jsonl"
    path.write_text(
        '{"id": 1, "sender": "alice", "body": "hi", "created_at": "2026-01-01T12:00:00Z"}\n'
        "not json at all\n"
        "\n"
        '{"id": 2, "sender": "bob", "body": "hey", "created_at": "2026-01-01T12:00:05Z"}\n',
        encoding="utf-8",
    )

    store = FileMessageStore(str(path))
    assert [m.id for m in await store.list_recent(50)] == [1, 2]


@pytest.mark.asyncio
async def test_file_store_write_failure_is_transient_storage_error(tmp_path):
    store = FileMessageStore(str(tmp_path / "messages.jsonl"))
    await store.append("alice", "hi")

    store.path = str(tmp_path)  # a directory: open(..., "a") fails
    with pytest.raises(StorageError) as exc_info:
        await store.append("alice", "lost")
    assert exc_info.value.transient is True

    # Nothing partial was recorded and the id was not burned
    assert [m.body for m in await store.list_recent(50)] == ["hi"]
    store.path = str(tmp_path / "messages.jsonl")
    assert (await store.append("alice", "again")).id == 2


@pytest.mark.asyncio
async def test_failed_flush_rolls_back_the_partial_line(tmp_path, monkeypatch):
    from chatroom.services import message_store as message_store_module

    path = str(tmp_path / "messages.jsonl")
    store = FileMessageStore(path)
    await store.append("alice", "hi")
    before = open(path, encoding="utf-8").read()

    class FailingFlushFile:
        def __init__(self, f):
            self.f = f

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            self.f.close()
            return False

        def write(self, data):
            # Half a record reaches the disk before the failure
            self.f.write(data[: len(data) // 2])

        def flush(self):
            self.f.flush()
            raise OSError("No space left on device")

    monkeypatch.setattr(
        message_store_module,
        "open",
        lambda *args, **kwargs: FailingFlushFile(open(*args, **kwargs)),
        raising=False,
    )
    with pytest.raises(StorageError):
        await store.append("bob", "lost")
    monkeypatch.undo()

    assert open(path, encoding="utf-8").read() == before

    await store.append("carol", "after")
    reloaded = FileMessageStore(path)
    assert [(m.id, m.body) for m in await reloaded.list_recent(50)] == [(1, "hi"), (2, "after")]


@pytest.mark.asyncio
async def test_write_that_lands_then_fails_does_not_reuse_its_id(store):
    class CommitThenFailStore(type(store)):
        fail_next = True

        async def _write(self, message):
            await super()._write(message)
            if self.fail_next:
                self.fail_next = False
                raise StorageError("reply lost", transient=True)

    flaky = CommitThenFailStore()
    with pytest.raises(StorageError):
        await flaky.append("alice", "hi")
    second = await flaky.append("alice", "hi again")

    assert [m.id for m in flaky.messages] == [1, 2]
    assert second.id == 2

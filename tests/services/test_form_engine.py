"""Tests for the FormEngine state machine."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from formbot.config.models import BotConfig
from formbot.domain.events import (
    ButtonPress,
    Command,
    CommandName,
    FileUpload,
    SubmissionEvent,
    TextInput,
)
from formbot.domain.template import FieldSpec, FormTemplate
from formbot.domain.types import FieldType, ParseMode
from formbot.errors import StorageError, TransportError
from formbot.services.form_engine import FormEngine
from formbot.transport.base import MediaMessage, OutboundMessage, RecordingTransport, TextMessage
from tests.conftest import build_template, wait_for

U1 = "u1"


class RecordingStorage:
    """Stands in for the Storage facade."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.rows: list[dict[str, str]] = []
        self._lock = threading.Lock()

    def insert(self, table_name: str, fields: Sequence[FieldSpec], answers: dict[str, str]) -> str:
        if self.fail:
            raise StorageError("database is gone")
        with self._lock:
            self.rows.append(dict(answers))
        return str(len(self.rows))


class RecordingDispatcher:
    def __init__(self, *, accept: bool = True) -> None:
        self.accept = accept
        self.events: list[SubmissionEvent] = []
        self._lock = threading.Lock()

    def enqueue(self, event: SubmissionEvent) -> bool:
        with self._lock:
            self.events.append(event)
        return self.accept


def start(engine: FormEngine, identity: str = U1) -> None:
    engine.handle(Command(identity, CommandName.START))


def say(engine: FormEngine, text: str, identity: str = U1) -> None:
    engine.handle(TextInput(identity, text))


def press(engine: FormEngine, data: str, identity: str = U1) -> None:
    engine.handle(ButtonPress(identity, data))


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()


class TestScenarios:
    def test_text_min_length(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        dispatcher: RecordingDispatcher,
    ) -> None:
        template = build_template(
            {
                "name": "nick",
                "label": "Nickname",
                "description": "Your nickname?",
                "validation": {"min_length": 3},
            }
        )
        engine = make_engine(template, dispatcher=dispatcher)

        start(engine)
        assert transport.texts(U1) == ["Your nickname?"]

        say(engine, "ab")
        assert "at least 3 characters" in transport.texts(U1)[-1]
        assert engine.store.get(U1).step == 0  # type: ignore[union-attr]

        say(engine, "abc")
        assert len(dispatcher.events) == 1
        assert dispatcher.events[0].data == {"nick": "abc"}
        assert transport.texts(U1)[-1] == template.messages.submit
        assert U1 not in engine.store

    def test_number_range(self, make_engine: Any, dispatcher: RecordingDispatcher) -> None:
        template = build_template(
            {"name": "age", "label": "Age", "type": "number", "validation": {"min": 18, "max": 65}}
        )
        engine = make_engine(template, dispatcher=dispatcher)
        start(engine)
        say(engine, "17")
        say(engine, "66")
        assert dispatcher.events == []
        say(engine, "40")
        assert dispatcher.events[0].data == {"age": "40"}

    def test_select(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        dispatcher: RecordingDispatcher,
    ) -> None:
        template = build_template(
            {"name": "colour", "label": "Colour", "type": "select", "options": ["red", "green"]}
        )
        engine = make_engine(template, dispatcher=dispatcher)
        start(engine)
        say(engine, "blue")
        assert "red, green" in transport.texts(U1)[-1]
        say(engine, "green")
        assert dispatcher.events[0].data == {"colour": "green"}

    def test_review_and_modify(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        dispatcher: RecordingDispatcher,
    ) -> None:
        template = build_template(
            {"name": "name", "label": "Name"},
            {"name": "city", "label": "City"},
            review_enabled=True,
        )
        engine = make_engine(template, dispatcher=dispatcher)
        start(engine)
        say(engine, "Ada")
        say(engine, "London")

        review = transport.last(U1)
        assert isinstance(review, TextMessage)
        assert review.parse_mode is ParseMode.HTML
        assert "<b>Name:</b> Ada" in review.text
        assert "<b>City:</b> London" in review.text
        assert [b.data for b in review.buttons] == ["modify_name", "modify_city", "submit"]
        assert dispatcher.events == []

        press(engine, "modify_city")
        assert transport.texts(U1)[-1] == "Please enter a new value for City:"
        say(engine, "Paris")
        assert "<b>City:</b> Paris" in transport.texts(U1)[-1]

        press(engine, "submit")
        assert [e.data for e in dispatcher.events] == [{"name": "Ada", "city": "Paris"}]

    def test_inactivity_timeout(self, transport: RecordingTransport) -> None:
        template = build_template({"name": "a"}, {"name": "b"})
        bot = BotConfig(session_timeout=0.2, end_text="Bye.")
        engine = FormEngine(template, transport, bot=bot)
        try:
            start(engine)
            say(engine, "first")
            assert engine.store.get(U1).step == 1  # type: ignore[union-attr]

            assert wait_for(lambda: U1 not in engine.store)
            assert wait_for(lambda: transport.texts(U1)[-1] == "Bye.")

            start(engine)
            session = engine.store.get(U1)
            assert session is not None
            assert session.step == 0
            assert session.answers == {}
        finally:
            engine.close()


class TestCommands:
    def test_help_does_not_create_session(
        self, make_engine: Any, transport: RecordingTransport
    ) -> None:
        engine = make_engine(build_template())
        engine.handle(Command(U1, CommandName.HELP))
        assert "/start - Start a new session" in transport.texts(U1)[0]
        assert U1 not in engine.store

    def test_end_clears_session(self, make_engine: Any, transport: RecordingTransport) -> None:
        engine = make_engine(build_template({"name": "a"}, {"name": "b"}))
        start(engine)
        say(engine, "x")
        engine.handle(Command(U1, CommandName.END))
        assert U1 not in engine.store
        assert transport.texts(U1)[-1] == BotConfig().end_text

    def test_start_discards_previous_answers(self, make_engine: Any) -> None:
        engine = make_engine(build_template({"name": "a"}, {"name": "b"}))
        start(engine)
        say(engine, "x")
        start(engine)
        session = engine.store.get(U1)
        assert session.step == 0  # type: ignore[union-attr]
        assert session.answers == {}  # type: ignore[union-attr]

    def test_input_before_start_answers_first_field(
        self, make_engine: Any, dispatcher: RecordingDispatcher
    ) -> None:
        engine = make_engine(build_template({"name": "a"}, {"name": "b"}), dispatcher=dispatcher)
        say(engine, "early")
        assert engine.store.get(U1).answers == {"a": "early"}  # type: ignore[union-attr]
        assert engine.store.get(U1).step == 1  # type: ignore[union-attr]


class TestButtons:
    def test_skip_on_skippable_field(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        dispatcher: RecordingDispatcher,
    ) -> None:
        template = build_template(
            {"name": "nick", "required": True, "skippable": True}, {"name": "city"}
        )
        engine = make_engine(template, dispatcher=dispatcher)
        start(engine)
        prompt_buttons = transport.last(U1)
        assert isinstance(prompt_buttons, TextMessage)
        assert prompt_buttons.text == template.messages.choose_option
        assert [b.data for b in prompt_buttons.buttons] == ["skip"]

        press(engine, "skip")
        say(engine, "Oslo")
        assert dispatcher.events[0].data == {"nick": "", "city": "Oslo"}

    def test_skip_on_required_field_is_refused(
        self, make_engine: Any, transport: RecordingTransport
    ) -> None:
        engine = make_engine(build_template({"name": "nick", "label": "Nick", "required": True}))
        start(engine)
        press(engine, "skip")
        assert transport.texts(U1)[-1] == "Oops! This Nick is required. Please provide a value."
        assert engine.store.get(U1).step == 0  # type: ignore[union-attr]

    def test_field_button_is_input(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        dispatcher: RecordingDispatcher,
    ) -> None:
        template = build_template(
            {
                "name": "size",
                "type": "select",
                "options": ["s", "m"],
                "buttons": [{"text": "Small", "data": "s"}, {"text": "Medium", "data": "m"}],
            }
        )
        engine = make_engine(template, dispatcher=dispatcher)
        start(engine)
        last = transport.last(U1)
        assert isinstance(last, TextMessage)
        assert [(b.text, b.data) for b in last.buttons] == [("Small", "s"), ("Medium", "m")]
        press(engine, "m")
        assert dispatcher.events[0].data == {"size": "m"}

    def test_submit_before_review_is_ignored(
        self, make_engine: Any, dispatcher: RecordingDispatcher
    ) -> None:
        engine = make_engine(build_template(review_enabled=True), dispatcher=dispatcher)
        start(engine)
        press(engine, "submit")
        assert dispatcher.events == []
        assert engine.store.get(U1).step == 0  # type: ignore[union-attr]

    def test_unknown_modify_target_rerenders_review(
        self, make_engine: Any, transport: RecordingTransport
    ) -> None:
        engine = make_engine(build_template(review_enabled=True))
        start(engine)
        say(engine, "Ada")
        press(engine, "modify_ghost")
        last = transport.last(U1)
        assert isinstance(last, TextMessage)
        assert last.text.startswith(engine.template.messages.review)
        assert engine.store.get(U1).modify_target is None  # type: ignore[union-attr]

    def test_rejected_modification_keeps_target(
        self, make_engine: Any, transport: RecordingTransport
    ) -> None:
        template = build_template(
            {"name": "age", "label": "Age", "type": "number"}, review_enabled=True
        )
        engine = make_engine(template)
        start(engine)
        say(engine, "30")
        press(engine, "modify_age")
        say(engine, "thirty")
        assert transport.texts(U1)[-1] == "Oops! Please enter a valid number for Age."
        assert engine.store.get(U1).modify_target == "age"  # type: ignore[union-attr]


class TestReviewRendering:
    def test_empty_values_and_escaping(
        self, make_engine: Any, transport: RecordingTransport
    ) -> None:
        template = build_template(
            {"name": "note", "label": "Note"},
            {"name": "extra", "label": "Extra", "skippable": True},
            review_enabled=True,
        )
        engine = make_engine(template)
        start(engine)
        say(engine, "<script>")
        press(engine, "skip")
        text = transport.texts(U1)[-1]
        assert "<b>Note:</b> &lt;script&gt;" in text
        assert "<b>Extra:</b> Not provided" in text

    def test_modify_button_labels(self, make_engine: Any, transport: RecordingTransport) -> None:
        engine = make_engine(build_template(review_enabled=True))
        start(engine)
        say(engine, "Ada")
        review = transport.last(U1)
        assert isinstance(review, TextMessage)
        assert review.buttons[0].text == "✏️ Modify Name"
        assert review.buttons[-1].text == "✅ Submit"


class TestFileUploads:
    @pytest.fixture
    def template(self) -> FormTemplate:
        return build_template({"name": "docs", "label": "Docs", "type": "file", "required": True})

    def test_multiple_uploads_joined(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        dispatcher: RecordingDispatcher,
        template: FormTemplate,
    ) -> None:
        engine = make_engine(template, dispatcher=dispatcher)
        start(engine)
        engine.handle(FileUpload(U1, "https://files/a.pdf"))
        assert transport.texts(U1)[-2] == template.messages.file_upload_success
        choice = transport.last(U1)
        assert isinstance(choice, TextMessage)
        assert [b.data for b in choice.buttons] == ["upload_another", "finish_uploading"]

        press(engine, "upload_another")
        assert transport.texts(U1)[-1] == template.messages.upload_another
        engine.handle(FileUpload(U1, "https://files/b.pdf"))
        press(engine, "finish_uploading")
        assert dispatcher.events[0].data == {"docs": "https://files/a.pdf,https://files/b.pdf"}

    def test_finish_without_upload_on_required_field(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        template: FormTemplate,
    ) -> None:
        engine = make_engine(template)
        start(engine)
        press(engine, "finish_uploading")
        expected = "Oops! A file is required for Docs. Please upload a file."
        assert transport.texts(U1)[-1] == expected
        assert engine.store.get(U1).step == 0  # type: ignore[union-attr]

    def test_upload_on_text_step_is_ignored(
        self, make_engine: Any, transport: RecordingTransport
    ) -> None:
        engine = make_engine(build_template())
        start(engine)
        sent = len(transport.messages)
        engine.handle(FileUpload(U1, "https://files/a.pdf"))
        assert len(transport.messages) == sent
        assert engine.store.get(U1).uploads == []  # type: ignore[union-attr]


class TestMediaPrompts:
    def test_photo_field_sends_media_with_caption(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        tmp_path: Path,
    ) -> None:
        picture = tmp_path / "intro.png"
        picture.write_bytes(b"\x89PNG")
        template = build_template(
            {
                "name": "intro",
                "type": "photo",
                "location": str(picture),
                "description": "<b>Welcome</b>",
                "formatting": "HTML",
            }
        )
        engine = make_engine(template)
        start(engine)
        sent = transport.last(U1)
        assert isinstance(sent, MediaMessage)
        assert sent.kind is FieldType.PHOTO
        assert sent.location == str(picture)
        assert sent.caption == "<b>Welcome</b>"
        assert sent.parse_mode is ParseMode.HTML


class FlakyTransport(RecordingTransport):
    """Fails every MediaMessage, records everything else."""

    def send(self, message: OutboundMessage) -> None:
        if isinstance(message, MediaMessage):
            raise TransportError("upload refused")
        super().send(message)


class NoHtmlTransport(RecordingTransport):
    """Fails every HTML text message, which is what the review screen uses."""

    def send(self, message: OutboundMessage) -> None:
        if isinstance(message, TextMessage) and message.parse_mode is ParseMode.HTML:
            raise TransportError("can't parse entities")
        super().send(message)


class CrashingStorage:
    """A storage adaptor that fails with something other than StorageError."""

    def insert(self, table_name: str, fields: Sequence[FieldSpec], answers: dict[str, str]) -> str:
        raise RuntimeError("driver blew up")


class TestFailures:
    def test_prompt_failure_clears_session(self, quiet_bot: BotConfig, tmp_path: Path) -> None:
        picture = tmp_path / "p.png"
        picture.write_bytes(b"x")
        template = build_template({"name": "p", "type": "photo", "location": str(picture)})
        transport = FlakyTransport()
        engine = FormEngine(template, transport, bot=quiet_bot)
        start(engine)
        assert transport.texts(U1) == [quiet_bot.send_failure_text]
        assert U1 not in engine.store

    def test_storage_failure_still_confirms(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        dispatcher: RecordingDispatcher,
    ) -> None:
        engine = make_engine(
            build_template(), storage=RecordingStorage(fail=True), dispatcher=dispatcher
        )
        start(engine)
        say(engine, "Ada")
        assert transport.texts(U1)[-1] == engine.template.messages.submit
        assert len(dispatcher.events) == 1
        assert U1 not in engine.store

    def test_review_failure_clears_session(self, quiet_bot: BotConfig) -> None:
        template = build_template({"name": "name", "label": "Name"}, review_enabled=True)
        transport = NoHtmlTransport()
        engine = FormEngine(template, transport, bot=quiet_bot)
        start(engine)
        say(engine, "Ada")
        assert transport.texts(U1)[-1] == quiet_bot.send_failure_text
        assert U1 not in engine.store

    def test_storage_crash_still_confirms(
        self,
        make_engine: Any,
        transport: RecordingTransport,
        dispatcher: RecordingDispatcher,
    ) -> None:
        engine = make_engine(build_template(), storage=CrashingStorage(), dispatcher=dispatcher)
        start(engine)
        say(engine, "Ada")
        assert transport.texts(U1)[-1] == engine.template.messages.submit
        assert [e.data for e in dispatcher.events] == [{"name": "Ada"}]
        assert U1 not in engine.store

    def test_dispatch_rejection_still_confirms(
        self, make_engine: Any, transport: RecordingTransport, storage: RecordingStorage
    ) -> None:
        engine = make_engine(
            build_template(), storage=storage, dispatcher=RecordingDispatcher(accept=False)
        )
        start(engine)
        say(engine, "Ada")
        assert storage.rows == [{"name": "Ada"}]
        assert transport.texts(U1)[-1] == engine.template.messages.submit


class TestInvariants:
    def test_step_never_regresses_outside_modify(self, make_engine: Any) -> None:
        template = build_template(
            {"name": "a", "validation": {"min_length": 2}},
            {"name": "b", "type": "number"},
            {"name": "c", "skippable": True},
            review_enabled=True,
        )
        engine = make_engine(template)
        steps: list[int] = []
        start(engine)
        for action in ("x", "xy", "nope", "5", "skip", "anything", "zzz"):
            if action == "skip":
                press(engine, action)
            else:
                say(engine, action)
            steps.append(engine.store.get(U1).step)  # type: ignore[union-attr]
        assert steps == sorted(steps)
        assert steps[-1] == 3

    def test_sessions_are_isolated_under_concurrency(
        self,
        make_engine: Any,
        storage: RecordingStorage,
        dispatcher: RecordingDispatcher,
    ) -> None:
        template = build_template({"name": "name"}, {"name": "city"})
        before = template.model_dump()
        engine = make_engine(template, storage=storage, dispatcher=dispatcher)
        users = [f"user-{n}" for n in range(24)]
        barrier = threading.Barrier(len(users))

        def converse(identity: str) -> None:
            barrier.wait()
            start(engine, identity)
            say(engine, f"name-{identity}", identity)
            say(engine, f"city-{identity}", identity)

        threads = [threading.Thread(target=converse, args=(u,)) for u in users]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        expected = sorted((f"name-{u}", f"city-{u}") for u in users)
        assert sorted((e.data["name"], e.data["city"]) for e in dispatcher.events) == expected
        assert sorted((r["name"], r["city"]) for r in storage.rows) == expected
        assert template.model_dump() == before
        assert len(engine.store) == 0


class TestPlugins:
    def test_post_submit_hook(self, make_engine: Any) -> None:
        from formbot.plugins.hookspecs import hookimpl
        from formbot.plugins.manager import PluginManager

        seen: list[tuple[str, str, dict[str, str]]] = []

        class Audit:
            @hookimpl
            def post_submit(self, form_name: str, identity: str, data: dict[str, str]) -> None:
                seen.append((form_name, identity, data))

        plugins = PluginManager()
        plugins.register_plugin(Audit())
        engine = make_engine(build_template(), plugins=plugins)
        start(engine)
        say(engine, "Ada")
        assert seen == [("signup", U1, {"name": "Ada"})]

"""The form state machine.

One :class:`FormEngine` serves every identity. Events for the same
identity are applied one at a time under that session's lock; events
for different identities run in parallel. The template is shared and
read-only; a user's answers live only in their :class:`Session`.

States are derived from the session:

- collecting: ``step < len(fields)`` and not reviewing
- reviewing: ``reviewing`` set and no ``modify_target``
- modifying: ``modify_target`` set
"""

from __future__ import annotations

import html
from typing import TYPE_CHECKING

import structlog

from formbot.config.models import BotConfig
from formbot.domain.events import (
    ButtonPress,
    Command,
    CommandName,
    FileUpload,
    InboundEvent,
    SubmissionEvent,
    TextInput,
)
from formbot.domain.template import Button, FieldSpec, FormTemplate
from formbot.domain.types import (
    FINISH_UPLOADING,
    MEDIA_TYPES,
    MODIFY_PREFIX,
    SKIP,
    SUBMIT,
    UPLOAD_ANOTHER,
    FieldType,
    ParseMode,
)
from formbot.domain.validators import Accepted, ValidationOutcome, validate
from formbot.errors import StorageError, TransportError
from formbot.services.session_store import Session, SessionStore
from formbot.transport.base import MediaMessage, OutboundMessage, TextMessage, Transport

if TYPE_CHECKING:
    from formbot.infrastructure.storage.base import Storage
    from formbot.plugins.manager import PluginManager
    from formbot.services.dispatcher import SubmissionDispatcher

logger = structlog.get_logger(__name__)


class FormEngine:
    """Drive sessions through a :class:`FormTemplate`.

    Parameters:
        template: The loaded form.
        transport: Where outbound messages go.
        store: Session store; a private one is created when omitted. The
            engine installs itself as the store's expiry callback.
        storage: Persistence capability; omitted means no persistence.
        dispatcher: Webhook dispatcher; omitted means no notification.
        bot: ``[bot]`` settings (timeout and fixed texts).
        plugins: Receives ``post_submit`` after every submission.
    """

    def __init__(
        self,
        template: FormTemplate,
        transport: Transport,
        *,
        store: SessionStore | None = None,
        storage: Storage | None = None,
        dispatcher: SubmissionDispatcher | None = None,
        bot: BotConfig | None = None,
        plugins: PluginManager | None = None,
    ) -> None:
        self._template = template
        self._messages = template.messages
        self._transport = transport
        self._store = store if store is not None else SessionStore()
        self._store.set_expire_callback(self._expire)
        self._storage = storage
        self._dispatcher = dispatcher
        self._bot = bot or BotConfig()
        self._plugins = plugins

    @property
    def template(self) -> FormTemplate:
        return self._template

    @property
    def store(self) -> SessionStore:
        return self._store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def handle(self, event: InboundEvent) -> None:
        """Apply one inbound event for its identity."""
        identity = event.identity

        if isinstance(event, Command) and event.name is CommandName.HELP:
            self._send(TextMessage(identity, self._bot.help_text))
            return

        with self._store.locked(identity) as session:
            if isinstance(event, Command) and event.name is CommandName.END:
                self._end(identity)
                return

            self._store.reset_deadline(identity, self._bot.session_timeout)

            if isinstance(event, Command):
                self._start(session)
            elif isinstance(event, TextInput):
                self._on_input(session, event.text)
            elif isinstance(event, ButtonPress):
                self._on_button(session, event.data)
            elif isinstance(event, FileUpload):
                self._on_upload(session, event.url)

    def close(self) -> None:
        """Drop all sessions and cancel their timers."""
        self._store.close()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _start(self, session: Session) -> None:
        session.restart()
        logger.info("session_started", identity=session.identity, form=self._template.form_name)
        self._prompt(session)

    def _end(self, identity: str) -> None:
        self._store.clear(identity)
        logger.info("session_ended", identity=identity)
        self._send(TextMessage(identity, self._bot.end_text))

    def _expire(self, identity: str) -> None:
        self._end(identity)

    def _current_field(self, session: Session) -> FieldSpec | None:
        """The field the next input answers, or None while on the review screen."""
        if session.modify_target is not None:
            return self._template.field_named(session.modify_target)
        if session.reviewing or session.step >= len(self._template):
            return None
        return self._template.fields[session.step]

    def _on_input(self, session: Session, text: str) -> None:
        spec = self._current_field(session)
        if spec is None:
            logger.debug("input_while_reviewing", identity=session.identity)
            self._send_review(session)
            return
        self._apply(session, spec, validate(spec, text, self._messages))

    def _on_button(self, session: Session, data: str) -> None:
        log = logger.bind(identity=session.identity, data=data)
        spec = self._current_field(session)

        if spec is None:
            if data == SUBMIT:
                self._finalize(session)
            elif data.startswith(MODIFY_PREFIX):
                self._begin_modify(session, data.removeprefix(MODIFY_PREFIX))
            else:
                log.debug("button_ignored_in_review")
                self._send_review(session)
            return

        if data == SKIP:
            if spec.skippable:
                self._apply(session, spec, Accepted(""))
            else:
                self._send(
                    TextMessage(
                        session.identity,
                        self._messages.render("required_input", spec.display_name),
                    )
                )
            return

        if data == SUBMIT:
            log.debug("submit_before_review", step=session.step)
            return

        if spec.type is FieldType.FILE and data == UPLOAD_ANOTHER:
            self._send(TextMessage(session.identity, self._messages.upload_another))
            return

        if spec.type is FieldType.FILE and data == FINISH_UPLOADING:
            value = ",".join(session.uploads)
            self._apply(session, spec, validate(spec, value, self._messages))
            return

        self._apply(session, spec, validate(spec, data, self._messages))

    def _on_upload(self, session: Session, url: str) -> None:
        spec = self._current_field(session)
        if spec is None or spec.type is not FieldType.FILE:
            logger.warning(
                "upload_ignored",
                identity=session.identity,
                step=session.step,
                field=spec.name if spec is not None else None,
            )
            return
        if not url:
            logger.warning("upload_without_location", identity=session.identity, field=spec.name)
            return

        session.uploads.append(url)
        logger.debug(
            "file_uploaded",
            identity=session.identity,
            field=spec.name,
            count=len(session.uploads),
        )
        self._send(TextMessage(session.identity, self._messages.file_upload_success))
        self._send(
            TextMessage(
                session.identity,
                self._messages.finish_upload,
                buttons=(
                    Button(text=self._messages.upload_another_button, data=UPLOAD_ANOTHER),
                    Button(text=self._messages.finish_upload_button, data=FINISH_UPLOADING),
                ),
            )
        )

    def _apply(self, session: Session, spec: FieldSpec, outcome: ValidationOutcome) -> None:
        """Store an accepted value and move on, or send the rejection."""
        if not isinstance(outcome, Accepted):
            logger.info(
                "input_rejected",
                identity=session.identity,
                field=spec.name,
                step=session.step,
                reason=outcome.reason,
            )
            self._send(TextMessage(session.identity, outcome.user_message))
            return

        session.answers[spec.name] = outcome.value
        session.uploads.clear()

        if session.modify_target is not None:
            logger.debug("field_modified", identity=session.identity, field=spec.name)
            session.modify_target = None
            self._send_review(session)
            return

        session.step += 1
        self._advance(session)

    def _advance(self, session: Session) -> None:
        if session.step < len(self._template):
            self._prompt(session)
        elif self._template.review_enabled:
            session.reviewing = True
            self._send_review(session)
        else:
            self._finalize(session)

    def _begin_modify(self, session: Session, name: str) -> None:
        spec = self._template.field_named(name)
        if spec is None:
            logger.warning("modify_unknown_field", identity=session.identity, field=name)
            self._send_review(session)
            return
        session.modify_target = spec.name
        self._send(
            TextMessage(session.identity, self._messages.render("modify", spec.display_name))
        )

    def _finalize(self, session: Session) -> None:
        identity = session.identity
        template = self._template
        event = SubmissionEvent.from_answers(
            template.form_name,
            [spec.name for spec in template.fields],
            session.answers,
        )
        log = logger.bind(identity=identity, form=template.form_name)

        if self._storage is not None:
            try:
                self._storage.insert(template.table_name, template.fields, event.data)
            except StorageError as exc:
                log.error("persist_failed", error=str(exc))
            except Exception:
                log.exception("persist_crashed")

        if self._dispatcher is not None and not self._dispatcher.enqueue(event):
            log.warning("submission_not_dispatched")

        if self._plugins is not None:
            self._plugins.notify_submitted(template.form_name, identity, dict(event.data))

        log.info("form_submitted", fields=len(event.data))
        self._send(TextMessage(identity, self._messages.submit))
        self._store.clear(identity)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _prompt(self, session: Session) -> None:
        """Send the current field's prompt; a failed send ends the session."""
        spec = self._template.fields[session.step]
        message: OutboundMessage
        if spec.type in MEDIA_TYPES:
            message = MediaMessage(
                session.identity,
                kind=spec.type,
                location=spec.location,
                caption=spec.description,
                parse_mode=spec.formatting,
            )
        else:
            message = TextMessage(session.identity, spec.description, parse_mode=spec.formatting)

        try:
            self._transport.send(message)
        except TransportError as exc:
            logger.error(
                "prompt_send_failed",
                identity=session.identity,
                field=spec.name,
                error=str(exc),
            )
            self._abandon(session)
            return

        buttons = list(spec.buttons)
        if spec.skippable:
            buttons.append(Button(text=self._messages.skip_button, data=SKIP))
        if buttons:
            self._send(
                TextMessage(session.identity, self._messages.choose_option, buttons=tuple(buttons))
            )

    def render_review(self, session: Session) -> TextMessage:
        """The review screen for *session*: one line per field plus buttons."""
        lines = [self._messages.review, ""]
        for spec in self._template.fields:
            value = session.answers.get(spec.name, "") or self._messages.not_provided
            lines.append(f"<b>{html.escape(spec.display_name)}:</b> {html.escape(value)}")

        buttons = [
            Button(
                text=self._messages.render("modify_button", spec.display_name),
                data=f"{MODIFY_PREFIX}{spec.name}",
            )
            for spec in self._template.fields
        ]
        buttons.append(Button(text=self._messages.submit_button, data=SUBMIT))
        return TextMessage(
            session.identity,
            "\n".join(lines),
            parse_mode=ParseMode.HTML,
            buttons=tuple(buttons),
        )

    def _send_review(self, session: Session) -> None:
        if not self._send(self.render_review(session)):
            self._abandon(session)

    def _abandon(self, session: Session) -> None:
        """Tell the user the form broke down and drop their session."""
        self._send(TextMessage(session.identity, self._bot.send_failure_text))
        self._store.clear(session.identity)

    def _send(self, message: OutboundMessage) -> bool:
        try:
            self._transport.send(message)
        except TransportError as exc:
            logger.error("send_failed", identity=message.identity, error=str(exc))
            return False
        return True

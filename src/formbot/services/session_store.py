"""Per-identity conversation state with inactivity expiry.

Each identity maps to at most one live :class:`Session`. The store-wide
lock only guards the dictionary; everything that reads or mutates a
session happens under that session's own ``RLock``, so two identities
never contend with each other.

Expiry uses one ``threading.Timer`` per session. Every reset or clear
bumps the session's ``token``; a timer that fires carrying an old token,
or for a session that is no longer the live one, does nothing.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[str], None]


@dataclass(eq=False)
class Session:
    """Mutable state of one user's pass through the form.

    Only touched while ``lock`` is held.
    """

    identity: str
    step: int = 0
    answers: dict[str, str] = field(default_factory=dict)
    uploads: list[str] = field(default_factory=list)
    modify_target: str | None = None
    reviewing: bool = False
    deadline: float | None = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    token: int = field(default=0, repr=False)
    timer: threading.Timer | None = field(default=None, repr=False)

    def restart(self) -> None:
        """Back to step 0 with no answers."""
        self.step = 0
        self.answers.clear()
        self.uploads.clear()
        self.modify_target = None
        self.reviewing = False

    def _cancel_timer(self) -> None:
        self.token += 1
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        self.deadline = None


class SessionStore:
    """Concurrency-safe map of identity to :class:`Session`.

    Args:
        on_expire: Called with the identity when a session's deadline
            passes. Runs on the timer thread with the session lock held.
            Defaults to clearing the session.
        clock: Monotonic clock used for ``Session.deadline``.
    """

    def __init__(
        self,
        *,
        on_expire: ExpireCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._on_expire = on_expire
        self._clock = clock

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def set_expire_callback(self, callback: ExpireCallback | None) -> None:
        self._on_expire = callback

    def get(self, identity: str) -> Session | None:
        with self._lock:
            return self._sessions.get(identity)

    def get_or_create(self, identity: str) -> Session:
        """Return the live session for *identity*, creating it if needed."""
        with self._lock:
            session = self._sessions.get(identity)
            if session is None:
                session = Session(identity=identity)
                self._sessions[identity] = session
            return session

    @contextmanager
    def locked(self, identity: str) -> Iterator[Session]:
        """Hold *identity*'s session lock for the duration of the block.

        If the session was cleared while this thread waited for its lock,
        the wait is repeated against the freshly created replacement.
        """
        while True:
            session = self.get_or_create(identity)
            session.lock.acquire()
            if self.get(identity) is session:
                break
            session.lock.release()
        try:
            yield session
        finally:
            session.lock.release()

    def reset_deadline(self, identity: str, timeout: float) -> None:
        """Replace any pending expiry of *identity* with one *timeout* from now.

        A non-positive *timeout* disables expiry for the session.
        """
        session = self.get(identity)
        if session is None:
            return
        with session.lock:
            session._cancel_timer()
            if timeout <= 0:
                return
            token = session.token
            session.deadline = self._clock() + timeout
            timer = threading.Timer(timeout, self._expire, args=(identity, session, token))
            timer.daemon = True
            session.timer = timer
            timer.start()

    def clear(self, identity: str) -> None:
        """Forget *identity* and cancel its pending expiry. Idempotent."""
        with self._lock:
            session = self._sessions.pop(identity, None)
        if session is None:
            return
        with session.lock:
            session._cancel_timer()

    def close(self) -> None:
        """Drop every session and cancel all timers."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            with session.lock:
                session._cancel_timer()

    def _expire(self, identity: str, session: Session, token: int) -> None:
        with session.lock:
            if session.token != token or self.get(identity) is not session:
                return
            session.timer = None
            logger.info("Session %s expired after inactivity", identity)
            if self._on_expire is None:
                self.clear(identity)
                return
            try:
                self._on_expire(identity)
            except Exception:
                logger.exception("Expiry callback failed for %s", identity)
                self.clear(identity)

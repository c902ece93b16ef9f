"""
=============================================================================
SESSION SPAWNER (THREAD-PER-CONNECTION)
=============================================================================

Every accepted connection gets its own daemon thread. The accept loop hands
the work off and goes straight back to accept(); it never waits for a
session to finish.

    accept loop (main thread)
        │
        ├──► spawn(session, conn1) ──► Thread 1: read → classify → write → close
        ├──► spawn(session, conn2) ──► Thread 2: read → classify → write → close
        └──► spawn(session, conn3) ──► Thread 3: ...

Sessions share nothing mutable, so no locking is needed between them. The
spawner's own counters are the only shared state and sit behind one lock.

=============================================================================
CAPACITY
=============================================================================

There is no queue. Each session owns its thread and the threads are
daemons: nothing is drained on exit, in-flight sessions die with the
process.

An optional cap (max_sessions) bounds the number of live threads. When it is
reached spawn() refuses immediately instead of queueing; the caller closes
the connection and the client sees "closed without a response".

=============================================================================
"""

import logging
import threading
from typing import Any, Callable, Optional


class SessionSpawner:
    """
    Starts one daemon thread per session.

    Usage:
        spawner = SessionSpawner(max_sessions=64)
        if not spawner.spawn(handle_connection, sock, addr):
            sock.close()  # over capacity

    Attributes:
        max_sessions: Cap on concurrently running sessions, or None.
    """

    def __init__(self, max_sessions: Optional[int] = None, logger: Optional[logging.Logger] = None):
        self.max_sessions = max_sessions
        self._logger = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._active = 0
        self._started = 0
        self._rejected = 0
        self._failed = 0
        self._next_id = 0

    def spawn(self, target: Callable[..., Any], *args: Any, name: Optional[str] = None) -> bool:
        """
        Run target(*args) on a new daemon thread.

        Returns:
            True if the thread was started, False if the session cap is
            reached.

        Raises:
            RuntimeError: If the interpreter cannot start another thread.
        """
        with self._lock:
            if self.max_sessions is not None and self._active >= self.max_sessions:
                self._rejected += 1
                return False
            self._active += 1
            self._next_id += 1
            session_id = self._next_id

        thread = threading.Thread(
            target=self._run,
            args=(target, args),
            name=name or f"session-{session_id}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError:
            with self._lock:
                self._active -= 1
            raise

        with self._lock:
            self._started += 1
        return True

    def _run(self, target: Callable[..., Any], args: tuple):
        try:
            target(*args)
        except Exception as e:
            # Keep the thread from dying with a bare traceback on stderr.
            with self._lock:
                self._failed += 1
            self._logger.exception(f"{threading.current_thread().name} failed: {e}")
        finally:
            with self._lock:
                self._active -= 1

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def active(self) -> int:
        """Number of sessions currently running."""
        with self._lock:
            return self._active

    @property
    def started(self) -> int:
        with self._lock:
            return self._started

    @property
    def rejected(self) -> int:
        with self._lock:
            return self._rejected

    @property
    def failed(self) -> int:
        with self._lock:
            return self._failed

    @property
    def stats(self) -> dict:
        """Snapshot of the spawner counters."""
        with self._lock:
            return {
                "active": self._active,
                "started": self._started,
                "rejected": self._rejected,
                "failed": self._failed,
                "max_sessions": self.max_sessions,
            }

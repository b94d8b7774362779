"""
Permit-based admission control for honeypot streams.

Every streaming response holds one ``AdmissionPermit`` for its whole
lifetime.  The ``StreamAdmissionController`` hands out permits while the
number of outstanding permits is strictly below the configured maximum and
refuses immediately otherwise.  There is no queue: scrapers must not be
able to pile up at the front door waiting for a slot, and a refusal must be
cheap enough that it cannot itself become a resource-exhaustion vector.

A maximum of ``0`` means unlimited capacity; admission always succeeds but
permits are still counted so that the active stream count remains
observable through the metrics endpoint.

Architecture
------------
The outstanding permit counter is the only mutable state shared between
connections in the hot path.  It is protected by a ``threading.Lock``
rather than an ``asyncio.Lock`` because permits are released from
``finally`` blocks and context-manager exits that must not await.

Releasing a permit is idempotent: the permit remembers whether it has
already been returned, so an accidental second release can never drive the
counter below the number of streams actually running.

This mechanism is distinct from per-client rate limiting (``slowapi``):

- **Admission control** limits the *total* number of concurrent streams
  across *all* clients.
- **Rate limiting** limits the *frequency* of requests from a *single*
  client address.

Usage in route handlers::

    permit = admission_controller.try_acquire()
    if permit is None:
        raise honeypot.exceptions.AdmissionRejectedError()
    with permit:
        ...

or, when rejection should surface as an exception directly::

    async with admission_controller.acquire_or_reject():
        ...
"""

import collections.abc
import contextlib
import threading
import types

import honeypot.exceptions


class AdmissionPermit:
    """
    One unit of stream concurrency capacity.

    Returned by ``StreamAdmissionController.try_acquire``.  The permit is
    returned to its controller by ``release`` or by leaving a ``with``
    block; both are safe to call any number of times.
    """

    def __init__(self, controller: "StreamAdmissionController") -> None:
        self._controller = controller
        self._released = False
        self._release_lock = threading.Lock()

    @property
    def released(self) -> bool:
        """Return whether this permit has already been returned."""
        return self._released

    def release(self) -> None:
        """Return the permit to its controller.  Later calls do nothing."""
        with self._release_lock:
            if self._released:
                return
            self._released = True
        self._controller._release_slot()

    def __enter__(self) -> "AdmissionPermit":
        return self

    def __exit__(
        self,
        exception_type: type[BaseException] | None,
        exception_value: BaseException | None,
        traceback: types.TracebackType | None,
    ) -> None:
        self.release()


class StreamAdmissionController:
    """
    Controls the maximum number of concurrently active honeypot streams.

    When the number of outstanding permits reaches ``maximum_concurrency``,
    ``try_acquire`` returns ``None`` and ``acquire_or_reject`` raises
    ``AdmissionRejectedError`` immediately, with no queuing and no waiting.
    """

    def __init__(self, maximum_concurrency: int = 0) -> None:
        """
        Initialise the admission controller.

        Args:
            maximum_concurrency: The maximum number of streams that may be
                active at once.  ``0`` disables the limit.
        """
        if maximum_concurrency < 0:
            raise ValueError("maximum_concurrency must be zero (unlimited) or positive")
        self._maximum_concurrency = maximum_concurrency
        self._active_session_count: int = 0
        self._counter_lock = threading.Lock()

    def try_acquire(self) -> AdmissionPermit | None:
        """
        Attempt to take one unit of stream capacity.

        Returns:
            An ``AdmissionPermit`` when capacity is available, otherwise
            ``None``.  The caller must reject the connection without
            starting any content generation.
        """
        with self._counter_lock:
            if self._maximum_concurrency and self._active_session_count >= self._maximum_concurrency:
                return None
            self._active_session_count += 1
        return AdmissionPermit(self)

    @contextlib.asynccontextmanager
    async def acquire_or_reject(
        self,
    ) -> collections.abc.AsyncIterator[AdmissionPermit]:
        """
        Hold a permit for the duration of the ``async with`` body.

        Raises:
            honeypot.exceptions.AdmissionRejectedError:
                When the maximum concurrency limit has been reached.
        """
        permit = self.try_acquire()
        if permit is None:
            raise honeypot.exceptions.AdmissionRejectedError()

        with permit:
            yield permit

    def _release_slot(self) -> None:
        with self._counter_lock:
            self._active_session_count -= 1

    @property
    def active_session_count(self) -> int:
        """Return the current number of outstanding permits."""
        return self._active_session_count

    @property
    def maximum_concurrency(self) -> int:
        """Return the configured maximum concurrency limit (0 = unlimited)."""
        return self._maximum_concurrency

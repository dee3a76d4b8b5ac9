"""
PropertyCollector change watch.

Opens a filter on a single object in a dedicated session, polls
WaitForUpdatesEx, keeps the latest value seen for each watched property and
resolves once the tested property holds one of the expected values.

Each watch owns its session: filters are tied to the session that created
them, and two watches sharing one session would overwrite each other's
filter.
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pyVmomi import vmodl

from vcenter_client.connection import disconnect_vcenter
from vcenter_client.errors import (
    FilterCreateError,
    SessionError,
    UpdatePollError,
    VCenterClientError,
    WatchCancelled,
    WatchTimedOut,
)
from vcenter_client.models import moref_type
from vcenter_client.property_specs import (
    build_filter_spec,
    build_property_spec,
    build_single_object_spec,
)

logger = logging.getLogger(__name__)

CHANGE_KINDS = ('enter', 'leave', 'modify')
REMOVE_OPS = ('remove', 'indirectRemove')


class WatchState(str, Enum):
    OPENING = "opening"
    CREATING_FILTER = "creating_filter"
    POLLING = "polling"
    RESOLVED = "resolved"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = (
    WatchState.RESOLVED,
    WatchState.FAILED,
    WatchState.CANCELLED,
    WatchState.TIMED_OUT,
)


def _as_list(value: Union[Any, Iterable[Any]]) -> List[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


class PropertyWatch:
    """One wait-for-values call. Not reusable."""

    def __init__(
        self,
        session_factory: Callable[[], Any],
        moref,
        filter_props,
        end_wait_props,
        expected_vals,
        timeout: Optional[float] = None,
        poll_wait_seconds: int = 60,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.session_factory = session_factory
        self.moref = moref
        self.filter_props = _as_list(filter_props)
        self.end_wait_props = _as_list(end_wait_props)
        self.expected_vals = _as_list(expected_vals)
        self.poll_wait_seconds = poll_wait_seconds
        self.cancel_event = cancel_event
        self.deadline = time.monotonic() + timeout if timeout and timeout > 0 else None

        self.state = WatchState.OPENING
        self.version = ""
        self.to_compare: Dict[str, Any] = {}
        self.final_values: Dict[str, Any] = {}

        self._session = None
        self._collector = None
        self._filter = None

    # ------------------------------------------------------------------
    # Update processing
    # ------------------------------------------------------------------

    def _record(self, accumulator: Dict[str, Any], props: List[str], change) -> None:
        for prop in props:
            if prop in change.name:
                accumulator[prop] = "" if change.op in REMOVE_OPS else change.val

    def apply_update_set(self, update_set) -> bool:
        """
        Fold one WaitForUpdatesEx result into the accumulators.

        Returns:
            True once a tested property holds an expected value
        """
        if update_set is None or not update_set.filterSet:
            return False

        self.version = update_set.version

        for filter_update in update_set.filterSet:
            for object_update in filter_update.objectSet or []:
                if object_update.kind not in CHANGE_KINDS:
                    continue
                for change in object_update.changeSet or []:
                    self._record(self.to_compare, self.end_wait_props, change)
                    self._record(self.final_values, self.filter_props, change)

        return any(val in self.expected_vals for val in self.to_compare.values())

    # ------------------------------------------------------------------
    # Protocol steps
    # ------------------------------------------------------------------

    def _open(self) -> None:
        self.state = WatchState.OPENING
        try:
            self._session = self.session_factory()
        except SessionError:
            raise
        except Exception as e:
            raise SessionError.wrap(e, "open_watch_session", self.moref) from e

    def _create_filter(self) -> None:
        self.state = WatchState.CREATING_FILTER
        filter_spec = build_filter_spec(
            [build_property_spec(moref_type(self.moref), self.filter_props)],
            [build_single_object_spec(self.moref)]
        )
        try:
            self._collector = self._session.RetrieveContent().propertyCollector
            self._filter = self._collector.CreateFilter(filter_spec, partialUpdates=True)
        except Exception as e:
            raise FilterCreateError.wrap(e, "CreateFilter", self.moref) from e

    def _check_abort(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.state = WatchState.CANCELLED
            raise WatchCancelled("Watch cancelled", operation="wait_for_values", moref=self.moref)
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self.state = WatchState.TIMED_OUT
            raise WatchTimedOut("Watch deadline passed", operation="wait_for_values", moref=self.moref)

    def _max_wait(self) -> int:
        wait = self.poll_wait_seconds
        if self.deadline is not None:
            remaining = self.deadline - time.monotonic()
            wait = min(wait, max(1, int(remaining)))
        return wait

    def _poll(self):
        options = vmodl.query.PropertyCollector.WaitOptions(maxWaitSeconds=self._max_wait())
        try:
            return self._collector.WaitForUpdatesEx(self.version, options)
        except Exception as e:
            raise UpdatePollError.wrap(e, "WaitForUpdatesEx", self.moref) from e

    def _close(self) -> None:
        if self._filter is not None:
            try:
                self._filter.DestroyPropertyFilter()
            except Exception as e:
                logger.warning(f"Failed to destroy property filter: {e}")
            self._filter = None
        disconnect_vcenter(self._session)
        self._session = None

    def run(self) -> Dict[str, Any]:
        """Run the watch to completion; the dedicated session is always closed."""
        if self.state != WatchState.OPENING:
            raise RuntimeError(f"PropertyWatch already {self.state.value}")

        try:
            self._check_abort()
            self._open()
            self._create_filter()

            self.state = WatchState.POLLING
            while True:
                self._check_abort()
                update_set = self._poll()
                if self.apply_update_set(update_set):
                    self.state = WatchState.RESOLVED
                    return dict(self.final_values)
                logger.debug(f"No expected value yet (version={self.version!r}, seen={self.to_compare})")
        except VCenterClientError:
            if self.state not in TERMINAL_STATES:
                self.state = WatchState.FAILED
            raise
        except Exception:
            self.state = WatchState.FAILED
            raise
        finally:
            self._close()


class WatchMixin:
    """Mixin providing wait_for_values.

    Expects the host class to expose ``open_watch_session`` and ``settings``.
    """

    def wait_for_values(
        self,
        moref,
        filter_props,
        end_wait_props,
        expected_vals,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """
        Watch an object until a property reaches an expected value.

        Args:
            moref: Object to watch
            filter_props: Property path(s) to watch and return
            end_wait_props: Name(s) whose changes are tested (substring of
                the changed property path)
            expected_vals: Value(s) ending the wait
            timeout: Seconds before WatchTimedOut; defaults to
                settings.watch_timeout, 0 or less waits without deadline
            cancel_event: Set it to stop the watch with WatchCancelled

        Returns:
            {filter_prop: latest value} for the filter properties seen
        """
        if timeout is None:
            timeout = self.settings.watch_timeout

        watch = PropertyWatch(
            self.open_watch_session,
            moref,
            filter_props,
            end_wait_props,
            expected_vals,
            timeout=timeout,
            poll_wait_seconds=self.settings.poll_wait_seconds,
            cancel_event=cancel_event,
        )
        return watch.run()

import threading
import time
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from pyVmomi import vim

from vcenter_client.client import VCenterClient
from vcenter_client.config import Settings
from vcenter_client.errors import (
    FilterCreateError,
    SessionError,
    UpdatePollError,
    WatchCancelled,
    WatchTimedOut,
)
from vcenter_client.mixins.watch import PropertyWatch, WatchState


def change(name, val=None, op="assign"):
    return SimpleNamespace(name=name, op=op, val=val)


def update_set(version, *changes, kind="modify"):
    return SimpleNamespace(
        version=version,
        filterSet=[SimpleNamespace(objectSet=[SimpleNamespace(kind=kind, changeSet=list(changes))])],
    )


def empty_update_set(version="0"):
    return SimpleNamespace(version=version, filterSet=[])


TASK_PROPS = ["info.state", "info.error"]


class ApplyUpdateSetTests(unittest.TestCase):
    """Accumulator behaviour, fed without any session."""

    def make_watch(self, expected=("success", "error")):
        return PropertyWatch(MagicMock(), vim.Task("task-1"), TASK_PROPS, "state", list(expected))

    def test_none_and_empty_ticks_keep_cursor(self):
        watch = self.make_watch()

        self.assertFalse(watch.apply_update_set(None))
        self.assertFalse(watch.apply_update_set(empty_update_set("7")))
        self.assertEqual(watch.version, "")

    def test_cursor_advances_to_update_version(self):
        watch = self.make_watch()

        watch.apply_update_set(update_set("1", change("info.state", "running")))
        watch.apply_update_set(update_set("2", change("info.progress", 50)))

        self.assertEqual(watch.version, "2")

    def test_resolves_on_expected_value(self):
        watch = self.make_watch()

        self.assertFalse(watch.apply_update_set(update_set("1", change("info.state", "running"))))
        self.assertTrue(watch.apply_update_set(update_set("2", change("info.state", "success"))))
        self.assertEqual(watch.final_values, {"info.state": "success"})

    def test_irrelevant_changes_do_not_resolve(self):
        watch = self.make_watch()

        resolved = watch.apply_update_set(update_set("1", change("info.progress", 90)))

        self.assertFalse(resolved)
        self.assertEqual(watch.to_compare, {})
        self.assertEqual(watch.final_values, {})

    def test_latest_value_wins(self):
        watch = self.make_watch()

        watch.apply_update_set(update_set(
            "1",
            change("info.state", "queued"),
            change("info.state", "running"),
        ))

        self.assertEqual(watch.to_compare, {"state": "running"})
        self.assertEqual(watch.final_values, {"info.state": "running"})

    def test_remove_on_tested_property_does_not_resolve(self):
        watch = self.make_watch()

        resolved = watch.apply_update_set(update_set("1", change("info.state", "success", op="remove")))

        self.assertFalse(resolved)
        self.assertEqual(watch.to_compare, {"state": ""})
        self.assertEqual(watch.final_values, {"info.state": ""})

    def test_remove_resolves_when_empty_string_expected(self):
        watch = self.make_watch(expected=("",))

        self.assertTrue(watch.apply_update_set(update_set("1", change("info.state", op="remove"))))

    def test_substring_match_on_nested_paths(self):
        watch = PropertyWatch(MagicMock(), vim.VirtualMachine("vm-1"),
                              "summary.runtime.powerState", "powerState", "poweredOn")

        resolved = watch.apply_update_set(update_set("1", change("summary.runtime.powerState", "poweredOn")))

        self.assertTrue(resolved)
        self.assertEqual(watch.final_values, {"summary.runtime.powerState": "poweredOn"})

    def test_enter_and_leave_kinds_are_processed(self):
        watch = self.make_watch()

        self.assertTrue(watch.apply_update_set(update_set("1", change("info.state", "success"), kind="enter")))

        watch = self.make_watch()
        self.assertTrue(watch.apply_update_set(update_set("1", change("info.state", "error"), kind="leave")))

    def test_unknown_kind_ignored(self):
        watch = self.make_watch()

        self.assertFalse(watch.apply_update_set(update_set("1", change("info.state", "success"), kind="other")))
        self.assertEqual(watch.version, "1")


@patch("vcenter_client.mixins.watch.disconnect_vcenter")
class WaitForValuesTests(unittest.TestCase):
    def setUp(self):
        self.task = vim.Task("task-10")
        self.sessions = []
        self.collector = MagicMock()
        self.property_filter = self.collector.CreateFilter.return_value
        self.client = VCenterClient(settings=Settings(), session_factory=self.new_session)

    def new_session(self):
        session = MagicMock()
        session.RetrieveContent.return_value.propertyCollector = self.collector
        self.sessions.append(session)
        return session

    def wait(self, **kwargs):
        return self.client.wait_for_values(self.task, TASK_PROPS, "state", ["success", "error"], **kwargs)

    def test_resolves_and_closes_dedicated_session(self, disconnect):
        self.collector.WaitForUpdatesEx.side_effect = [
            update_set("1", change("info.state", "running")),
            update_set("2", change("info.state", "success")),
        ]

        result = self.wait()

        self.assertEqual(result, {"info.state": "success"})
        self.assertEqual(len(self.sessions), 1)
        disconnect.assert_called_once_with(self.sessions[0])
        self.property_filter.DestroyPropertyFilter.assert_called_once()

        versions = [c.args[0] for c in self.collector.WaitForUpdatesEx.call_args_list]
        self.assertEqual(versions, ["", "1"])

    def test_filter_spec_targets_task(self, disconnect):
        self.collector.WaitForUpdatesEx.return_value = update_set("1", change("info.state", "success"))

        self.wait()

        args, kwargs = self.collector.CreateFilter.call_args
        spec = args[0]
        self.assertTrue(kwargs["partialUpdates"])
        self.assertIs(spec.propSet[0].type, vim.Task)
        self.assertEqual(list(spec.propSet[0].pathSet), TASK_PROPS)
        self.assertIs(spec.objectSet[0].obj, self.task)
        self.assertFalse(spec.objectSet[0].skip)
        self.assertFalse(spec.objectSet[0].selectSet)

    def test_poll_wait_fits_inside_session_socket_timeout(self, disconnect):
        self.collector.WaitForUpdatesEx.return_value = update_set("1", change("info.state", "success"))
        self.client = VCenterClient(settings=Settings(poll_wait_seconds=60))

        with patch("vcenter_client.connection.SmartConnect", side_effect=lambda **kwargs: self.new_session()) as smart_connect:
            self.wait(timeout=0)

        socket_timeout = smart_connect.call_args.kwargs["httpConnectionTimeout"]
        options = self.collector.WaitForUpdatesEx.call_args.args[1]
        self.assertEqual(options.maxWaitSeconds, 60)
        self.assertLess(options.maxWaitSeconds, socket_timeout)

    def test_error_value_returned_with_state(self, disconnect):
        fault = RuntimeError("vim.fault.InvalidPowerState")
        self.collector.WaitForUpdatesEx.return_value = update_set(
            "1", change("info.state", "error"), change("info.error", fault)
        )

        result = self.wait()

        self.assertEqual(result, {"info.state": "error", "info.error": fault})

    def test_noop_ticks_do_not_change_result(self, disconnect):
        resolving = update_set("9", change("info.state", "success"))
        self.collector.WaitForUpdatesEx.side_effect = [resolving]
        direct = self.wait()

        self.collector.WaitForUpdatesEx.side_effect = [
            None,
            empty_update_set(),
            update_set("3", change("info.progress", 10)),
            update_set("4", change("info.description", "x")),
            resolving,
        ]
        after_noise = self.wait()

        self.assertEqual(direct, after_noise)
        versions = [c.args[0] for c in self.collector.WaitForUpdatesEx.call_args_list[1:]]
        self.assertEqual(versions, ["", "", "", "3", "4"])

    def test_session_failure(self, disconnect):
        self.client.session_factory = MagicMock(side_effect=OSError("unreachable"))

        with self.assertRaises(SessionError):
            self.wait()
        self.collector.CreateFilter.assert_not_called()

    def test_filter_creation_failure_closes_session(self, disconnect):
        self.collector.CreateFilter.side_effect = RuntimeError("vmodl.query.InvalidProperty")

        with self.assertRaises(FilterCreateError) as ctx:
            self.wait()

        self.assertEqual(ctx.exception.moref, self.task)
        disconnect.assert_called_once_with(self.sessions[0])
        self.collector.WaitForUpdatesEx.assert_not_called()

    def test_poll_failure_closes_session(self, disconnect):
        self.collector.WaitForUpdatesEx.side_effect = [
            update_set("1", change("info.state", "running")),
            ConnectionResetError("reset"),
        ]

        with self.assertRaises(UpdatePollError):
            self.wait()

        self.property_filter.DestroyPropertyFilter.assert_called_once()
        disconnect.assert_called_once_with(self.sessions[0])

    def test_cancel_event_stops_polling(self, disconnect):
        cancel = threading.Event()

        def poll(version, options):
            cancel.set()
            return None

        self.collector.WaitForUpdatesEx.side_effect = poll

        with self.assertRaises(WatchCancelled):
            self.wait(cancel_event=cancel)

        self.assertEqual(self.collector.WaitForUpdatesEx.call_count, 1)
        disconnect.assert_called_once_with(self.sessions[0])

    def test_cancelled_before_start_opens_no_session(self, disconnect):
        cancel = threading.Event()
        cancel.set()

        with self.assertRaises(WatchCancelled):
            self.wait(cancel_event=cancel)

        self.assertEqual(self.sessions, [])

    def test_deadline_times_out(self, disconnect):
        def poll(version, options):
            time.sleep(0.05)
            return None

        self.collector.WaitForUpdatesEx.side_effect = poll

        with self.assertRaises(WatchTimedOut):
            self.wait(timeout=0.01)

        disconnect.assert_called_once_with(self.sessions[0])

    def test_concurrent_watches_use_separate_sessions(self, disconnect):
        self.collector.WaitForUpdatesEx.return_value = update_set("1", change("info.state", "success"))

        self.wait()
        self.wait()

        self.assertEqual(len(self.sessions), 2)
        self.assertIsNot(self.sessions[0], self.sessions[1])


@patch("vcenter_client.mixins.watch.disconnect_vcenter")
class PropertyWatchStateTests(unittest.TestCase):
    def test_states_and_single_use(self, disconnect):
        session = MagicMock()
        collector = session.RetrieveContent.return_value.propertyCollector
        collector.WaitForUpdatesEx.return_value = update_set("1", change("info.state", "success"))

        watch = PropertyWatch(lambda: session, vim.Task("task-2"), TASK_PROPS, "state", "success")
        self.assertEqual(watch.state, WatchState.OPENING)

        watch.run()
        self.assertEqual(watch.state, WatchState.RESOLVED)

        with self.assertRaises(RuntimeError):
            watch.run()

    def test_failed_state(self, disconnect):
        session = MagicMock()
        session.RetrieveContent.return_value.propertyCollector.CreateFilter.side_effect = RuntimeError("x")

        watch = PropertyWatch(lambda: session, vim.Task("task-3"), TASK_PROPS, "state", "success")
        with self.assertRaises(FilterCreateError):
            watch.run()

        self.assertEqual(watch.state, WatchState.FAILED)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

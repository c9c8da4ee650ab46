# SPDX-License-Identifier: LGPL-3.0-or-later
import threading
import unittest

from utmbuilder.core.exceptions import BuildCancelled, DriverError, RunnerError
from utmbuilder.multistep.runner import BasicRunner
from utmbuilder.multistep.state import CANCELLED, ERROR, HALTED, StateBag
from utmbuilder.multistep.step import BuildContext, Step, StepAction


class RecordingStep(Step):
    def __init__(self, label, journal, action=StepAction.CONTINUE, run_exc=None, cleanup_exc=None, on_run=None):
        self.label = label
        self.journal = journal
        self.action = action
        self.run_exc = run_exc
        self.cleanup_exc = cleanup_exc
        self.on_run = on_run

    @property
    def name(self):
        return self.label

    def run(self, ctx, state):
        self.journal.append(("run", self.label))
        if self.on_run:
            self.on_run(ctx, state)
        if self.run_exc is not None:
            raise self.run_exc
        if self.action is StepAction.HALT:
            state.put_error(DriverError(msg=f"{self.label} failed"))
        return self.action

    def cleanup(self, state):
        self.journal.append(("cleanup", self.label))
        if self.cleanup_exc is not None:
            raise self.cleanup_exc


class TestBasicRunner(unittest.TestCase):
    def setUp(self):
        self.journal = []
        self.state = StateBag()

    def _steps(self, *entries):
        return [RecordingStep(label, self.journal, **kw) for label, kw in entries]

    def test_success_runs_all_then_cleans_up_in_reverse(self):
        runner = BasicRunner(self._steps(("a", {}), ("b", {}), ("c", {})))

        action = runner.run(BuildContext(), self.state)

        self.assertEqual(action, StepAction.CONTINUE)
        self.assertEqual(
            self.journal,
            [("run", "a"), ("run", "b"), ("run", "c"), ("cleanup", "c"), ("cleanup", "b"), ("cleanup", "a")],
        )
        self.assertNotIn(ERROR, self.state)
        self.assertNotIn(HALTED, self.state)

    def test_halt_stops_forward_progress_and_unwinds_started_steps(self):
        runner = BasicRunner(self._steps(("a", {}), ("b", {"action": StepAction.HALT}), ("c", {})))

        action = runner.run(BuildContext(), self.state)

        self.assertEqual(action, StepAction.HALT)
        self.assertEqual(
            self.journal,
            [("run", "a"), ("run", "b"), ("cleanup", "b"), ("cleanup", "a")],
        )
        self.assertTrue(self.state.get(HALTED))
        self.assertEqual(str(self.state.error), "b failed")

    def test_first_error_wins(self):
        def second_error(ctx, state):
            state.put_error(DriverError(msg="later"))

        runner = BasicRunner(self._steps(("a", {"action": StepAction.HALT, "on_run": second_error})))
        runner.run(BuildContext(), self.state)

        self.assertEqual(str(self.state.error), "later")
        self.assertFalse(self.state.put_error(DriverError(msg="too late")))
        self.assertEqual(str(self.state.error), "later")

    def test_exception_in_run_is_recorded_and_unwound(self):
        boom = RuntimeError("boom")
        runner = BasicRunner(self._steps(("a", {}), ("b", {"run_exc": boom}), ("c", {})))

        action = runner.run(BuildContext(), self.state)

        self.assertEqual(action, StepAction.HALT)
        self.assertIs(self.state.error, boom)
        self.assertEqual(self.journal[-2:], [("cleanup", "b"), ("cleanup", "a")])
        self.assertNotIn(("run", "c"), self.journal)

    def test_cleanup_errors_are_collected_not_raised(self):
        runner = BasicRunner(
            self._steps(
                ("a", {}),
                ("b", {"cleanup_exc": RuntimeError("detach failed")}),
                ("c", {"action": StepAction.HALT}),
            )
        )

        runner.run(BuildContext(), self.state)

        self.assertEqual(
            [e for e in self.journal if e[0] == "cleanup"],
            [("cleanup", "c"), ("cleanup", "b"), ("cleanup", "a")],
        )
        self.assertEqual(len(runner.cleanup_errors), 1)
        self.assertEqual(runner.cleanup_errors[0].step, "b")
        self.assertEqual(str(self.state.error), "c failed")

    def test_cancel_before_start_runs_nothing(self):
        ctx = BuildContext()
        ctx.cancel("stop")
        runner = BasicRunner(self._steps(("a", {}), ("b", {})))

        action = runner.run(ctx, self.state)

        self.assertEqual(action, StepAction.HALT)
        self.assertEqual(self.journal, [])
        self.assertTrue(self.state.get(CANCELLED))
        self.assertIsInstance(self.state.error, BuildCancelled)

    def test_cancel_during_step_halts_and_cleans_that_step(self):
        def cancel(ctx, state):
            ctx.cancel()

        runner = BasicRunner(self._steps(("a", {}), ("b", {"on_run": cancel}), ("c", {})))
        action = runner.run(BuildContext(), self.state)

        self.assertEqual(action, StepAction.HALT)
        self.assertEqual(
            self.journal,
            [("run", "a"), ("run", "b"), ("cleanup", "b"), ("cleanup", "a")],
        )
        self.assertTrue(self.state.get(CANCELLED))
        self.assertEqual(self.state.error.code, 130)

    def test_step_raising_build_cancelled(self):
        runner = BasicRunner(self._steps(("a", {"run_exc": BuildCancelled(code=130, msg="interrupted")})))

        runner.run(BuildContext(), self.state)

        self.assertTrue(self.state.get(CANCELLED))
        self.assertEqual(str(self.state.error), "interrupted")
        self.assertEqual(self.journal, [("run", "a"), ("cleanup", "a")])

    def test_bad_return_value_halts(self):
        class Sloppy(Step):
            def run(self, ctx, state):
                return True

        runner = BasicRunner([Sloppy()])
        self.assertEqual(runner.run(None, self.state), StepAction.HALT)
        self.assertIsInstance(self.state.error, RunnerError)

    def test_runner_is_single_use(self):
        runner = BasicRunner(self._steps(("a", {})))
        runner.run(BuildContext(), self.state)
        with self.assertRaises(RunnerError):
            runner.run(BuildContext(), StateBag())

    def test_external_event_cancels(self):
        ev = threading.Event()
        ctx = BuildContext(ev)
        ev.set()
        self.assertTrue(ctx.cancelled)
        with self.assertRaises(BuildCancelled):
            ctx.check()


if __name__ == "__main__":
    unittest.main()

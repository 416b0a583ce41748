"""
Name: Resumable Workflow Unit Tests

Responsibilities:
  - Verify steps run in order and progress is persisted after each step
  - Verify a failed run resumes after the last completed step
  - Verify completed runs are not re-executed
"""

import pytest

from orabridge.application.workflow import Workflow, WorkflowStep
from orabridge.domain.entities import WorkflowStatus
from orabridge.infrastructure.repositories.in_memory import InMemoryWorkflowProgressRepository

pytestmark = pytest.mark.unit


class _Steps:
    """Records executions; `fail_on` makes one step raise once."""

    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on

    def make(self, name):
        def run(state):
            self.calls.append(name)
            if name == self.fail_on:
                self.fail_on = None
                raise RuntimeError(f"{name} exploded")
            return {name: len(self.calls)}

        return WorkflowStep(name, run)


def _workflow(steps, repo):
    return Workflow("demo", [steps.make("a"), steps.make("b"), steps.make("c")], repo)


class TestWorkflow:
    def test_runs_all_steps_in_order(self):
        repo = InMemoryWorkflowProgressRepository()
        steps = _Steps()

        run = _workflow(steps, repo).run("run-1", {"seed": 1})

        assert steps.calls == ["a", "b", "c"]
        assert run.status == WorkflowStatus.COMPLETED
        assert run.completed_steps == ["a", "b", "c"]
        assert run.state == {"seed": 1, "a": 1, "b": 2, "c": 3}
        assert repo.get_run("run-1").status == WorkflowStatus.COMPLETED

    def test_failure_is_persisted_and_reraised(self):
        repo = InMemoryWorkflowProgressRepository()
        steps = _Steps(fail_on="b")

        with pytest.raises(RuntimeError):
            _workflow(steps, repo).run("run-1")

        stored = repo.get_run("run-1")
        assert stored.status == WorkflowStatus.FAILED
        assert stored.completed_steps == ["a"]
        assert stored.error == "b: b exploded"

    def test_rerun_resumes_after_last_completed_step(self):
        repo = InMemoryWorkflowProgressRepository()
        steps = _Steps(fail_on="b")
        workflow = _workflow(steps, repo)
        with pytest.raises(RuntimeError):
            workflow.run("run-1")

        run = workflow.run("run-1")

        assert steps.calls == ["a", "b", "b", "c"]
        assert run.status == WorkflowStatus.COMPLETED
        assert run.error is None

    def test_completed_run_is_not_repeated(self):
        repo = InMemoryWorkflowProgressRepository()
        steps = _Steps()
        workflow = _workflow(steps, repo)
        workflow.run("run-1")

        workflow.run("run-1")

        assert steps.calls == ["a", "b", "c"]

    def test_run_id_of_another_workflow_is_rejected(self):
        repo = InMemoryWorkflowProgressRepository()
        _workflow(_Steps(), repo).run("run-1")
        other = Workflow("other", [_Steps().make("x")], repo)

        with pytest.raises(ValueError):
            other.run("run-1")

    @pytest.mark.parametrize("names", [[], ["a", "a"]])
    def test_invalid_step_lists(self, names):
        steps = _Steps()

        with pytest.raises(ValueError):
            Workflow("demo", [steps.make(n) for n in names], InMemoryWorkflowProgressRepository())


class TestInMemoryWorkflowProgressRepository:
    def test_returns_copies(self):
        repo = InMemoryWorkflowProgressRepository()
        _workflow(_Steps(), repo).run("run-1")

        run = repo.get_run("run-1")
        run.completed_steps.append("tampered")

        assert repo.get_run("run-1").completed_steps == ["a", "b", "c"]

    def test_unknown_run(self):
        assert InMemoryWorkflowProgressRepository().get_run("nope") is None

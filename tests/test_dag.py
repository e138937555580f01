from __future__ import annotations

import pytest

from gateci.dag import activate, build_dag, gate_candidates, schedule, topo_levels
from gateci.dsl import job, sh
from gateci.errors import (
    CyclicDependencyError,
    DuplicateJobError,
    PipelineDefinitionError,
    UnknownDependencyError,
)
from gateci.model import Trigger
from gateci.runner import run_pipeline


def _job(name, needs=None, **kw):
    return job(name, sh("step", "true"), needs=needs, **kw)


class TestActivate:
    def test_both_triggers_activate_the_full_pipeline(self, pipeline_jobs):
        names = [j.name for j in pipeline_jobs]
        assert [j.name for j in activate(pipeline_jobs, Trigger.PULL_REQUEST)] == names
        assert [j.name for j in activate(pipeline_jobs, "merge_group")] == names

    def test_filters_by_trigger(self):
        jobs = [_job("a", on=["pull_request"]), _job("b"), _job("c", on=["merge_group"])]
        assert [j.name for j in activate(jobs, "pull_request")] == ["a", "b"]

    def test_no_match_is_empty(self):
        assert activate([_job("a", on=["pull_request"])], "merge_group") == []


class TestSchedule:
    def test_levels(self, pipeline_jobs):
        dag = schedule(pipeline_jobs)
        assert dag.levels() == [
            ["check-msrv", "clippy", "test-msrv", "test-nightly", "test-stable"],
            ["tests"],
        ]
        assert dag.order()[-1] == "tests"
        assert set(dag.roots()) == set(dag.levels()[0])

    def test_unknown_dependency(self):
        with pytest.raises(UnknownDependencyError) as exc:
            schedule([_job("tests", needs=["clippy", "fmt"]), _job("clippy")])
        assert exc.value.job == "tests"
        assert exc.value.dependency == "fmt"
        assert "fmt" in str(exc.value)

    def test_mutual_dependency_is_a_cycle(self):
        with pytest.raises(CyclicDependencyError) as exc:
            schedule([_job("a", needs=["b"]), _job("b", needs=["a"])])
        assert exc.value.cycle in (["a", "b", "a"], ["b", "a", "b"])

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(CyclicDependencyError) as exc:
            schedule([_job("a", needs=["a"])])
        assert exc.value.cycle == ["a", "a"]

    def test_longer_cycle_reports_the_loop_only(self):
        jobs = [
            _job("root"),
            _job("a", needs=["root", "c"]),
            _job("b", needs=["a"]),
            _job("c", needs=["b"]),
            _job("tail", needs=["c"]),
        ]
        with pytest.raises(CyclicDependencyError) as exc:
            schedule(jobs)
        loop = exc.value.cycle
        assert loop[0] == loop[-1]
        assert set(loop) == {"a", "b", "c"}

    def test_duplicate_names(self):
        with pytest.raises(DuplicateJobError) as exc:
            schedule([_job("a"), _job("a")])
        assert exc.value.names == ["a"]

    def test_definition_errors_are_value_errors(self):
        assert issubclass(CyclicDependencyError, PipelineDefinitionError)
        assert issubclass(UnknownDependencyError, ValueError)

    def test_validation_happens_before_any_job_runs(self, scripted):
        runner = scripted()
        jobs = [_job("ok"), _job("bad", needs=["missing"])]
        with pytest.raises(UnknownDependencyError):
            run_pipeline(jobs, "pull_request", step_runner=runner)
        assert runner.calls == []

    def test_activation_drops_a_needed_job(self):
        jobs = [_job("a", on=["merge_group"]), _job("b", needs=["a"])]
        with pytest.raises(UnknownDependencyError):
            schedule(activate(jobs, "pull_request"))

    @pytest.mark.parametrize(
        "edges,ok",
        [
            ({"a": [], "b": ["a"], "c": ["a", "b"]}, True),
            ({"a": ["c"], "b": ["a"], "c": ["b"]}, False),
            ({"a": [], "b": ["x"]}, False),
            ({}, True),
        ],
    )
    def test_schedule_succeeds_iff_acyclic_and_closed(self, edges, ok):
        jobs = [_job(n, needs=deps) for n, deps in edges.items()]
        if ok:
            assert len(schedule(jobs)) == len(jobs)
        else:
            with pytest.raises(PipelineDefinitionError):
                schedule(jobs)


class TestHelpers:
    def test_build_dag_and_topo_levels(self):
        adj, indeg = build_dag([_job("a"), _job("b", needs=["a"]), _job("c", needs=["a"])])
        assert adj["a"] == {"b", "c"}
        assert indeg == {"a": 0, "b": 1, "c": 1}
        assert topo_levels(adj, indeg) == [["a"], ["b", "c"]]

    def test_gate_candidates(self, pipeline_jobs):
        assert gate_candidates(schedule(pipeline_jobs)) == ["tests"]

    def test_ancestors(self):
        dag = schedule([_job("a"), _job("b", needs=["a"]), _job("c", needs=["b"])])
        assert dag.ancestors("c") == {"a", "b"}
        assert dag.ancestors("a") == set()

# dag.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Set, Union

from .errors import CyclicDependencyError, DuplicateJobError, UnknownDependencyError
from .model import Job, Trigger


def activate(jobs: Iterable[Job], trigger: Union[Trigger, str]) -> List[Job]:
    """Jobs whose trigger conditions match, in declaration order."""
    trig = Trigger.parse(trigger)
    return [j for j in jobs if j.activated_by(trig)]


@dataclass(frozen=True)
class Dag:
    """
    Validated dependency graph.

      jobs:       name -> Job (declaration order)
      dependents: name -> names that need it (edge dep -> job)
      indegree:   name -> number of deps
    """
    jobs: Dict[str, Job]
    dependents: Dict[str, Set[str]]
    indegree: Dict[str, int]

    def __len__(self) -> int:
        return len(self.jobs)

    def roots(self) -> List[str]:
        return [n for n in self.jobs if self.indegree[n] == 0]

    def levels(self) -> List[List[str]]:
        return topo_levels(self.dependents, self.indegree)

    def order(self) -> List[str]:
        return [name for level in self.levels() for name in level]

    def ancestors(self, name: str) -> Set[str]:
        seen: Set[str] = set()
        stack = list(self.jobs[name].needs)
        while stack:
            dep = stack.pop()
            if dep not in seen:
                seen.add(dep)
                stack.extend(self.jobs[dep].needs)
        return seen


def build_dag(jobs: List[Job]):
    """
    Build adjacency + in-degree maps from Job objects.

    Requires:
      - job.name: str (unique)
      - job.needs: names of jobs that must run BEFORE this job
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise DuplicateJobError(dupes)

    adj: Dict[str, Set[str]] = {n: set() for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for job in jobs:
        for dep in job.needs:
            if dep not in adj:
                raise UnknownDependencyError(job.name, dep, names)
            # edge dep -> job.name
            if job.name not in adj[dep]:
                adj[dep].add(job.name)
                indeg[job.name] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Each stage can run in parallel.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(sorted(level))

    if processed != len(indeg):
        stuck = {n for n, d in indeg.items() if d > 0}
        raise CyclicDependencyError(_find_cycle(adj, stuck))

    return levels


def _find_cycle(adj: Dict[str, Set[str]], stuck: Set[str]) -> List[str]:
    # DFS over the nodes Kahn's algorithm could not release
    WHITE, GREY, BLACK = 0, 1, 2
    color = {n: WHITE for n in stuck}
    path: List[str] = []

    def visit(node: str) -> List[str] | None:
        color[node] = GREY
        path.append(node)
        for nxt in sorted(adj.get(node, set()) & stuck):
            if color[nxt] == GREY:
                return path[path.index(nxt):] + [nxt]
            if color[nxt] == WHITE:
                found = visit(nxt)
                if found:
                    return found
        path.pop()
        color[node] = BLACK
        return None

    for start in sorted(stuck):
        if color[start] == WHITE:
            found = visit(start)
            if found:
                return found
    return sorted(stuck)


def schedule(jobs: Iterable[Job]) -> Dag:
    """
    Build and validate the dependency graph.

    Raises DuplicateJobError, UnknownDependencyError or CyclicDependencyError;
    always before anything executes.
    """
    jobs = list(jobs)
    adj, indeg = build_dag(jobs)
    topo_levels(adj, indeg)  # cycle check
    return Dag(jobs={j.name: j for j in jobs}, dependents=adj, indegree=indeg)


def gate_candidates(dag: Dag) -> List[str]:
    """Jobs that (transitively) depend on every other non-tolerant job."""
    blocking = {n for n, j in dag.jobs.items() if not j.tolerant}
    out: List[str] = []
    for name in dag.jobs:
        others = blocking - {name}
        if others and others <= dag.ancestors(name):
            out.append(name)
    return out

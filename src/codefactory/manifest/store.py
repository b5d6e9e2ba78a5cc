"""Manifest store — generation calls, their dependencies, and build order.

Structural errors (duplicate id, unknown or self dependency, cycle) are
raised before any mutation, so a failed operation leaves the store as it
was.
"""

from __future__ import annotations

import copy
import heapq
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from codefactory.errors import (
    CallNotFoundError,
    CircularDependencyError,
    DependentsExistError,
    DuplicateIdError,
    SelfDependencyError,
    UnknownDependencyError,
    ValidationError,
)
from codefactory.factories.validator import validate_param_value

MANIFEST_VERSION = "1.0.0"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


@dataclass
class GenerationCall:
    """One recorded invocation of a factory."""

    id: str
    factory: str
    output_path: str
    params: dict[str, Any] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    factory_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "factory": self.factory,
            "params": self.params,
            "outputPath": self.output_path,
            "dependsOn": list(self.depends_on),
            "createdAt": self.created_at,
        }
        if self.factory_version:
            data["factoryVersion"] = self.factory_version
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationCall:
        return cls(
            id=data["id"],
            factory=data["factory"],
            output_path=data["outputPath"],
            params=dict(data.get("params") or {}),
            depends_on=list(data.get("dependsOn") or []),
            created_at=data.get("createdAt") or utc_now(),
            factory_version=data.get("factoryVersion"),
        )


def _dedupe(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def find_cycle(nodes: Iterable[str], adj: dict[str, list[str]]) -> list[str] | None:
    """Return one cycle in the graph (first node repeated at the end), or None.

    Depth-first search with white/gray/black colouring; a gray neighbour
    closes a cycle.
    """
    WHITE, GRAY, BLACK = 0, 1, 2
    color: dict[str, int] = defaultdict(lambda: WHITE)

    def dfs(node: str, path: list[str]) -> list[str] | None:
        color[node] = GRAY
        path.append(node)
        for neighbor in adj.get(node, []):
            if color[neighbor] == GRAY:
                return path[path.index(neighbor):] + [neighbor]
            if color[neighbor] == WHITE:
                found = dfs(neighbor, path)
                if found:
                    return found
        path.pop()
        color[node] = BLACK
        return None

    for node in nodes:
        if color[node] == WHITE:
            cycle = dfs(node, [])
            if cycle:
                return cycle
    return None


def execution_order(calls: list[GenerationCall]) -> list[GenerationCall]:
    """Topologically sort calls so each comes after everything it depends on.

    Kahn's algorithm; among calls that are ready at the same time, the one
    inserted first is taken first, so the order is deterministic.

    Raises:
        UnknownDependencyError: A call depends on an id not in ``calls``.
        CircularDependencyError: The dependency graph has a cycle.
    """
    index = {call.id: i for i, call in enumerate(calls)}
    indegree = [0] * len(calls)
    dependents: dict[str, list[int]] = defaultdict(list)

    for i, call in enumerate(calls):
        for dep in _dedupe(call.depends_on):
            if dep not in index:
                raise UnknownDependencyError(call.id, dep)
            indegree[i] += 1
            dependents[dep].append(i)

    ready = [i for i, degree in enumerate(indegree) if degree == 0]
    heapq.heapify(ready)
    order: list[GenerationCall] = []
    while ready:
        i = heapq.heappop(ready)
        order.append(calls[i])
        for j in dependents[calls[i].id]:
            indegree[j] -= 1
            if indegree[j] == 0:
                heapq.heappush(ready, j)

    if len(order) < len(calls):
        remaining = [c.id for c in calls if indegree[index[c.id]] > 0]
        adj = {c.id: list(c.depends_on) for c in calls}
        cycle = find_cycle(remaining, adj) or remaining
        raise CircularDependencyError(cycle)
    return order


class ManifestStore:
    """In-memory manifest of generation calls, kept in insertion order."""

    def __init__(
        self,
        calls: Iterable[GenerationCall] = (),
        version: str = MANIFEST_VERSION,
        last_generated: str | None = None,
    ) -> None:
        self.version = version
        self.last_generated = last_generated
        self._calls: dict[str, GenerationCall] = {}
        for call in calls:
            # Persisted manifests may hold dangling references left by a
            # forced removal, so only duplicates are rejected on load.
            if call.id in self._calls:
                raise DuplicateIdError(call.id)
            self._calls[call.id] = call

    # ── Queries ───────────────────────────────────────────────────

    def get(self, call_id: str) -> GenerationCall:
        try:
            return self._calls[call_id]
        except KeyError:
            raise CallNotFoundError(call_id) from None

    def list(self) -> list[GenerationCall]:
        return list(self._calls.values())

    def dependents_of(self, call_id: str) -> list[str]:
        return [c.id for c in self._calls.values() if call_id in c.depends_on]

    def get_execution_order(self) -> list[GenerationCall]:
        """Calls in dependency order; see ``execution_order``."""
        return execution_order(self.list())

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)

    # ── Mutations ─────────────────────────────────────────────────

    def add(self, call: GenerationCall) -> GenerationCall:
        """Add a new call.

        Raises:
            ValidationError: Empty id or params outside the ParamValue union.
            DuplicateIdError: The id is already taken.
            SelfDependencyError: The call lists itself as a dependency.
            UnknownDependencyError: A dependency is not in the manifest.
            CircularDependencyError: Calls left referencing this id by a
                forced removal would form a cycle with it.
        """
        if not call.id:
            raise ValidationError("id", "generation call id must not be empty")
        if call.id in self._calls:
            raise DuplicateIdError(call.id)
        call.depends_on = _dedupe(call.depends_on)
        self._check_call(call, self._calls)
        # A forced removal can leave calls pointing at this id already
        if self.dependents_of(call.id):
            adj = {c.id: list(c.depends_on) for c in self._calls.values()}
            adj[call.id] = call.depends_on
            cycle = find_cycle([call.id], adj)
            if cycle:
                raise CircularDependencyError(cycle)
        self._calls[call.id] = call
        return call

    def update(
        self,
        call_id: str,
        params: dict[str, Any] | None = None,
        output_path: str | None = None,
        depends_on: Iterable[str] | None = None,
        factory: str | None = None,
    ) -> GenerationCall:
        """Merge changes into an existing call.

        ``params`` are merged key by key; ``output_path``, ``depends_on``
        and ``factory`` replace the old values. The change is checked on a
        copy first, so a rejected update leaves the store untouched.

        Raises:
            CallNotFoundError: No call with this id.
            SelfDependencyError, UnknownDependencyError,
            CircularDependencyError: The new dependencies are invalid.
        """
        candidate = self.preview_update(call_id, params, output_path, depends_on, factory)
        self._calls[call_id] = candidate
        return candidate

    def preview_update(
        self,
        call_id: str,
        params: dict[str, Any] | None = None,
        output_path: str | None = None,
        depends_on: Iterable[str] | None = None,
        factory: str | None = None,
    ) -> GenerationCall:
        """The call as ``update`` would leave it, checked but not stored.

        Raises the same errors as ``update``.
        """
        candidate = copy.deepcopy(self.get(call_id))
        if params:
            candidate.params.update(params)
        if output_path is not None:
            candidate.output_path = output_path
        if depends_on is not None:
            candidate.depends_on = _dedupe(depends_on)
        if factory is not None:
            candidate.factory = factory

        graph = dict(self._calls)
        graph[call_id] = candidate
        self._check_call(candidate, graph)
        if depends_on is not None:
            execution_order(list(graph.values()))
        return candidate

    def remove(self, call_id: str, force: bool = False) -> GenerationCall:
        """Remove a call.

        Without ``force`` the removal is refused while other calls depend
        on it. With ``force`` those calls keep a reference to the missing
        id; updating them is left to the caller.

        Raises:
            CallNotFoundError: No call with this id.
            DependentsExistError: Other calls depend on it and force is off.
        """
        call = self.get(call_id)
        dependents = self.dependents_of(call_id)
        if dependents and not force:
            raise DependentsExistError(call_id, dependents)
        del self._calls[call_id]
        return call

    def touch(self) -> str:
        """Stamp the manifest as generated now."""
        self.last_generated = utc_now()
        return self.last_generated

    @staticmethod
    def _check_call(call: GenerationCall, calls: dict[str, GenerationCall]) -> None:
        validate_param_value("params", call.params)
        for dep in call.depends_on:
            if dep == call.id:
                raise SelfDependencyError(call.id)
            if dep not in calls:
                raise UnknownDependencyError(call.id, dep)

    # ── Serialization ─────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "lastGenerated": self.last_generated,
            "factories": [c.to_dict() for c in self._calls.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManifestStore:
        return cls(
            calls=[GenerationCall.from_dict(c) for c in data.get("factories", [])],
            version=data.get("version", MANIFEST_VERSION),
            last_generated=data.get("lastGenerated", data.get("generated")),
        )

"""Lazy, dependency-wired service resolution.

Collaborator services (filesystem, git, release hosting) are described by a
``ServiceDefinition`` whose factory builds the instance on demand. Resolving a
set of keys returns ``LazyService`` handles; nothing is constructed until a
handle is first used, and a construction failure is reported to that caller,
not to whoever resolved the handles. Services that are declared but never
touched cost nothing.

Each ``resolve`` call owns one resolution scope: instances are memoized inside
it (a dependency shared by two services is built once) and a "currently
resolving" chain detects circular service dependencies, reported as
``a -> b -> a``.

Usage:
    locator = ServiceLocator(default_service_definitions(), base_path=repo)
    services = locator.resolve(["git"]).unwrap()
    branch = services.git.current_branch()   # builds GitService here
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from firefly.core.errors import FireflyError, not_found_error, validation_error, with_context
from firefly.core.result import Err, Ok, Result
from firefly.output.console import ConsoleProtocol, NullConsole

__all__ = [
    "LazyService",
    "ResolvedServices",
    "ServiceDefinition",
    "ServiceFactory",
    "ServiceFactoryContext",
    "ServiceLocator",
    "ServiceUnavailableError",
]

_SOURCE = "service-locator"

LazyState = Literal["pending", "building", "built", "failed"]


@dataclass(frozen=True, slots=True)
class ServiceFactoryContext:
    """What a factory receives.

    Attributes:
        base_path: Project root the services operate on.
        get_service: Resolves another service within the same scope.
    """

    base_path: Path
    get_service: Callable[[str], Result[object, FireflyError]]


type ServiceFactory = Callable[[ServiceFactoryContext], Result[object, FireflyError]]


@dataclass(frozen=True, slots=True)
class ServiceDefinition:
    """How to build one service.

    Attributes:
        factory: Builds the instance, or returns Err.
        dependencies: Keys resolved (and built) before the factory runs.
        description: Human-readable summary of what the service provides.
    """

    factory: ServiceFactory
    dependencies: tuple[str, ...] = ()
    description: str | None = None


class ServiceUnavailableError(RuntimeError):
    """Raised when attribute access reaches a service that could not be built."""

    def __init__(self, key: str, error: FireflyError) -> None:
        super().__init__(f"service '{key}' is unavailable: {error.message}")
        self.key = key
        self.error = error


class LazyService[T]:
    """Memoizing thunk around one service instance.

    ``get()`` builds on first call and returns the cached instance (or the
    cached failure) afterwards. Attribute access is forwarded to the instance
    so a handle can be used in place of the service itself.
    """

    __slots__ = ("_key", "_build", "_state", "_instance", "_error")

    def __init__(self, key: str, build: Callable[[], Result[T, FireflyError]]) -> None:
        self._key = key
        self._build = build
        self._state: LazyState = "pending"
        self._instance: T | None = None
        self._error: FireflyError | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def state(self) -> LazyState:
        return self._state

    @property
    def is_built(self) -> bool:
        return self._state == "built"

    def get(self) -> Result[T, FireflyError]:
        match self._state:
            case "built":
                return Ok(self._instance)  # type: ignore[arg-type]
            case "failed":
                assert self._error is not None
                return Err(self._error)
            case "building":
                return Err(
                    validation_error(
                        f"Circular service dependency detected: {self._key} -> {self._key}",
                        source=_SOURCE,
                    )
                )
            case "pending":
                pass

        self._state = "building"
        try:
            result = self._build()
        except BaseException:
            self._state = "pending"
            raise

        if isinstance(result, Err):
            self._state = "failed"
            self._error = result.error
            return result

        self._state = "built"
        self._instance = result.value
        return result

    def __getattr__(self, name: str) -> object:
        if name.startswith("__"):
            raise AttributeError(name)
        result = self.get()
        if isinstance(result, Err):
            raise ServiceUnavailableError(self._key, result.error)
        return getattr(result.value, name)

    def __repr__(self) -> str:
        return f"LazyService({self._key!r}, state={self._state})"


class ResolvedServices(Mapping[str, LazyService[object]]):
    """Read-only collection of lazy handles, also reachable as attributes."""

    def __init__(self, handles: Mapping[str, LazyService[object]]) -> None:
        self._handles = dict(handles)

    def __getitem__(self, key: str) -> LazyService[object]:
        return self._handles[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._handles)

    def __len__(self) -> int:
        return len(self._handles)

    def __getattr__(self, name: str) -> LazyService[object]:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._handles[name]
        except KeyError:
            raise AttributeError(f"no service '{name}' was resolved") from None

    def instance(self, key: str) -> Result[object, FireflyError]:
        """Build (if needed) and return the service for ``key``."""
        handle = self._handles.get(key)
        if handle is None:
            return Err(not_found_error(f"Service '{key}' was not resolved", source=_SOURCE))
        return handle.get()

    def built_keys(self) -> tuple[str, ...]:
        return tuple(k for k, h in self._handles.items() if h.is_built)

    def __repr__(self) -> str:
        return f"ResolvedServices({', '.join(self._handles)})"


class _ResolutionScope:
    """One resolution: shared cache plus the in-progress chain."""

    def __init__(
        self,
        definitions: Mapping[str, ServiceDefinition],
        base_path: Path,
        console: ConsoleProtocol,
    ) -> None:
        self._definitions = definitions
        self._base_path = base_path
        self._console = console
        self.resolving: list[str] = []
        self.resolved: dict[str, object] = {}

    def resolve(self, key: str) -> Result[object, FireflyError]:
        if key in self.resolved:
            return Ok(self.resolved[key])

        if key in self.resolving:
            start = self.resolving.index(key)
            chain = " -> ".join([*self.resolving[start:], key])
            return Err(
                validation_error(f"Circular service dependency detected: {chain}", source=_SOURCE)
            )

        definition = self._definitions.get(key)
        if definition is None:
            return Err(not_found_error(f"Unknown service: {key}", source=_SOURCE))

        self.resolving.append(key)
        try:
            for dep in definition.dependencies:
                dep_result = self.resolve(dep)
                if isinstance(dep_result, Err):
                    return Err(with_context(dep_result.error, f"Failed to resolve '{key}'"))

            self._console.debug(f"ServiceLocator: constructing '{key}'")
            built = definition.factory(
                ServiceFactoryContext(base_path=self._base_path, get_service=self.resolve)
            )
        finally:
            self.resolving.remove(key)

        if isinstance(built, Err):
            return Err(with_context(built.error, f"Failed to construct service '{key}'"))

        self.resolved[key] = built.value
        return built


class ServiceLocator:
    """Resolves named services from explicit definitions.

    Definitions are passed in at construction time; there is no module-level
    registry.
    """

    def __init__(
        self,
        definitions: Mapping[str, ServiceDefinition],
        base_path: Path,
        *,
        console: ConsoleProtocol | None = None,
    ) -> None:
        self._definitions = dict(definitions)
        self._base_path = base_path
        self._console = console or NullConsole()

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(self._definitions)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def resolve(self, keys: Iterable[str]) -> Result[ResolvedServices, FireflyError]:
        """Return lazy handles for ``keys``; nothing is constructed yet."""
        wanted = list(dict.fromkeys(keys))
        unknown = [k for k in wanted if k not in self._definitions]
        if unknown:
            return Err(
                not_found_error(f"Unknown service(s): {', '.join(unknown)}", source=_SOURCE)
            )

        scope = _ResolutionScope(self._definitions, self._base_path, self._console)
        handles: dict[str, LazyService[object]] = {}
        for key in wanted:
            handles[key] = LazyService(key, _bind(scope, key))
        return Ok(ResolvedServices(handles))

    def resolve_all(self) -> ResolvedServices:
        result = self.resolve(self._definitions)
        assert isinstance(result, Ok)
        return result.value

    def resolve_one(self, key: str) -> Result[LazyService[object], FireflyError]:
        result = self.resolve([key])
        if isinstance(result, Err):
            return result
        return Ok(result.value[key])

    def resolve_eager(self, keys: Iterable[str]) -> Result[ResolvedServices, FireflyError]:
        """Resolve and build every service now, failing at the first error."""
        result = self.resolve(keys)
        if isinstance(result, Err):
            return result
        for handle in result.value.values():
            built = handle.get()
            if isinstance(built, Err):
                return built
        return result

    def check_definitions(self) -> Result[None, FireflyError]:
        """Statically check declared dependencies: unknown keys and cycles."""
        problems: list[str] = []
        for key, definition in self._definitions.items():
            for dep in definition.dependencies:
                if dep not in self._definitions:
                    problems.append(f"Service '{key}' depends on unknown service '{dep}'")

        visited: set[str] = set()
        stack: list[str] = []

        def visit(key: str) -> None:
            if key in stack:
                chain = " -> ".join([*stack[stack.index(key) :], key])
                problems.append(f"Circular service dependency detected: {chain}")
                return
            if key in visited or key not in self._definitions:
                return
            stack.append(key)
            for dep in self._definitions[key].dependencies:
                visit(dep)
            stack.pop()
            visited.add(key)

        for key in self._definitions:
            visit(key)

        if problems:
            return Err(
                validation_error(
                    "Service definitions are invalid", details=tuple(problems), source=_SOURCE
                )
            )
        return Ok(None)


def _bind(scope: _ResolutionScope, key: str) -> Callable[[], Result[object, FireflyError]]:
    return lambda: scope.resolve(key)

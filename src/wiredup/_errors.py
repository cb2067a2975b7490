from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable


class ContainerError(RuntimeError):
    pass


class NotInitializedError(ContainerError):
    def __init__(self, msg: str = "Container has not been initialized. Call build() first.") -> None:
        super().__init__(msg)


class DuplicateServiceNameError(ContainerError):
    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(names)
        msg = f"Duplicate service names: {', '.join(self.names)}"
        super().__init__(msg)


class AlreadyRegisteredError(ContainerError):
    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(names)
        msg = f"Service already registered: {', '.join(self.names)}"
        super().__init__(msg)


class CyclicDependencyError(ContainerError):
    def __init__(self, cycle: Iterable[str]) -> None:
        self.cycle = tuple(cycle)
        msg = f"Cyclic dependency detected: {' -> '.join(self.cycle)}"
        super().__init__(msg)


class ServiceNotRegisteredError(ContainerError):
    def __init__(self, name: str) -> None:
        self.name = name
        msg = f"Service {name!r} is not registered"
        super().__init__(msg)


class SingletonNotInitializedError(ContainerError):
    def __init__(self, name: str) -> None:
        self.name = name
        msg = f"Singleton {name!r} has not been created yet"
        super().__init__(msg)


class UnregisteredDependencyError(ContainerError):
    def __init__(self, missing: Iterable[str], target: object = None) -> None:
        self.missing = tuple(missing)
        target_name = getattr(target, "__qualname__", None) or repr(target)
        msg = f"Not all dependencies of {target_name} are registered services: {', '.join(self.missing)}"
        super().__init__(msg)


class ScopeMissingError(ContainerError):
    def __init__(self, operation: str) -> None:
        self.operation = operation
        msg = f"Attempt to {operation} outside of a request scope"
        super().__init__(msg)


class ScopedKeyConflictError(ContainerError):
    def __init__(self, key: str) -> None:
        self.key = key
        msg = f"Attempt to overwrite scoped value {key!r}"
        super().__init__(msg)


class ScopedKeyMissingError(ContainerError):
    def __init__(self, key: str) -> None:
        self.key = key
        msg = f"Scoped value {key!r} does not exist"
        super().__init__(msg)

"""Async dependency injection container.

This package provides a small dependency injection container for asyncio
applications. Services are registered by name with an explicit list of the
services they depend on, and are created according to their lifecycle.

Exports:
- `Container`: registry, resolver and lifecycle store. Build it from registrations,
  then `resolve()` targets, `get_service()` by name and `destroy()` when done.
- `singleton`, `scoped`, `transient`: registration constructors for the three lifecycles.
- `depends`: decorator declaring the dependency names of a factory or target.
- `RequestScope`: context-local store holding scoped instances for one logical request.
- `ContainerConfig`: logging level and lazy/eager singleton creation.
"""

from ._config import ContainerConfig
from ._container import Container
from ._errors import (
    AlreadyRegisteredError,
    ContainerError,
    CyclicDependencyError,
    DuplicateServiceNameError,
    NotInitializedError,
    ScopedKeyConflictError,
    ScopedKeyMissingError,
    ScopeMissingError,
    ServiceNotRegisteredError,
    SingletonNotInitializedError,
    UnregisteredDependencyError,
)
from ._graph import Graph, sort_topologically
from ._registration import (
    FactoryKind,
    Lifecycle,
    Registration,
    RegistrationBuilder,
    depends,
    describe_target,
    scoped,
    singleton,
    transient,
)
from ._scope import RequestScope


__all__ = [
    "AlreadyRegisteredError",
    "Container",
    "ContainerConfig",
    "ContainerError",
    "CyclicDependencyError",
    "DuplicateServiceNameError",
    "FactoryKind",
    "Graph",
    "Lifecycle",
    "NotInitializedError",
    "Registration",
    "RegistrationBuilder",
    "RequestScope",
    "ScopeMissingError",
    "ScopedKeyConflictError",
    "ScopedKeyMissingError",
    "ServiceNotRegisteredError",
    "SingletonNotInitializedError",
    "UnregisteredDependencyError",
    "depends",
    "describe_target",
    "scoped",
    "singleton",
    "sort_topologically",
    "transient",
]

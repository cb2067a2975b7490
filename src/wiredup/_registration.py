from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from ._utils import maybe_await


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from ._container import Container

    F = TypeVar("F", bound=Callable[..., Any])

    # A callable receiving the instance, or the name of a method on the instance
    Teardown = Callable[[Any], Any] | str

DEPENDENCIES_ATTR = "__wiredup_dependencies__"


class Lifecycle(Enum):
    SINGLETON = "singleton"
    SCOPED = "scoped"
    TRANSIENT = "transient"


class FactoryKind(Enum):
    """How a factory produces its value.

    - CONSTRUCTOR: allocates an instance; the result is used as is.
    - FUNCTION: called for its return value; awaitables are awaited.
    """

    CONSTRUCTOR = "constructor"
    FUNCTION = "function"


@dataclass(frozen=True)
class Registration:
    name: str
    lifecycle: Lifecycle
    factory: Callable[..., Any]
    kind: FactoryKind = FactoryKind.FUNCTION
    teardown: Teardown | None = None
    dependencies: tuple[str, ...] = ()

    async def release(self, instance: Any) -> None:
        """Run the teardown hook, if any, for an instance this registration produced."""
        if self.teardown is None:
            return

        logger.debug("Tearing down %s service %r", self.lifecycle.value, self.name)
        if isinstance(self.teardown, str):
            await maybe_await(getattr(instance, self.teardown)())
        else:
            await maybe_await(self.teardown(instance))


async def invoke(target: Callable[..., Any], kind: FactoryKind, args: Sequence[Any]) -> Any:
    if kind is FactoryKind.CONSTRUCTOR:
        return target(*args)
    return await maybe_await(target(*args))


def depends(*names: str) -> Callable[[F], F]:
    """Declare the services a factory or target needs, in positional order.

    Example:
      @depends("db", "logger")
      async def make_worker(db, logger): ...

    """
    dependencies = validate_names(names)

    def decorator(target: F) -> F:
        setattr(target, DEPENDENCIES_ATTR, dependencies)
        return target

    return decorator


def describe_target(target: Callable[..., Any]) -> tuple[str, ...]:
    """Return the dependency names declared on `target` with `depends`, or ()."""
    return tuple(getattr(target, DEPENDENCIES_ATTR, ()))


def validate_names(names: Iterable[str]) -> tuple[str, ...]:
    if isinstance(names, str):
        msg = f"Dependency names must be a sequence of strings, not the string {names!r}"
        raise TypeError(msg)

    names = tuple(names)
    for name in names:
        if not isinstance(name, str) or not name:
            msg = f"Dependency names must be non-empty strings, got {name!r}"
            raise ValueError(msg)
    return names


def _registration(
    lifecycle: Lifecycle,
    name: str,
    factory: Callable[..., Any],
    teardown: Teardown | None,
    depends_on: Iterable[str] | None,
    kind: FactoryKind,
) -> Registration:
    if not isinstance(name, str) or not name:
        msg = f"Service name must be a non-empty string, got {name!r}"
        raise ValueError(msg)

    if not callable(factory):
        msg = f"Factory for service {name!r} must be callable"
        raise TypeError(msg)

    dependencies = describe_target(factory) if depends_on is None else validate_names(depends_on)
    return Registration(
        name=name,
        lifecycle=lifecycle,
        factory=factory,
        kind=kind,
        teardown=teardown,
        dependencies=dependencies,
    )


def singleton(
    name: str,
    factory: Callable[..., Any],
    teardown: Teardown | None = None,
    *,
    depends_on: Iterable[str] | None = None,
    kind: FactoryKind = FactoryKind.FUNCTION,
) -> Registration:
    """Register a service created once per container.

    Example:
      singleton("db", create_db, close_db)
      singleton("cache", Cache, "close", depends_on=["db"], kind=FactoryKind.CONSTRUCTOR)

    """
    return _registration(Lifecycle.SINGLETON, name, factory, teardown, depends_on, kind)


def scoped(
    name: str,
    factory: Callable[..., Any],
    teardown: Teardown | None = None,
    *,
    depends_on: Iterable[str] | None = None,
    kind: FactoryKind = FactoryKind.FUNCTION,
) -> Registration:
    """Register a service created once per request scope."""
    return _registration(Lifecycle.SCOPED, name, factory, teardown, depends_on, kind)


def transient(
    name: str,
    factory: Callable[..., Any],
    teardown: Teardown | None = None,
    *,
    depends_on: Iterable[str] | None = None,
    kind: FactoryKind = FactoryKind.FUNCTION,
) -> Registration:
    """Register a service created anew for every resolution."""
    return _registration(Lifecycle.TRANSIENT, name, factory, teardown, depends_on, kind)


class RegistrationBuilder:
    """Collects registrations for one container and builds them together."""

    def __init__(self, container: Container) -> None:
        self.container = container
        self.registrations: list[Registration] = []

    def singleton(
        self, name: str, factory: Callable[..., Any], teardown: Teardown | None = None, **options: Any
    ) -> RegistrationBuilder:
        self.registrations.append(singleton(name, factory, teardown, **options))
        return self

    def scoped(
        self, name: str, factory: Callable[..., Any], teardown: Teardown | None = None, **options: Any
    ) -> RegistrationBuilder:
        self.registrations.append(scoped(name, factory, teardown, **options))
        return self

    def transient(
        self, name: str, factory: Callable[..., Any], teardown: Teardown | None = None, **options: Any
    ) -> RegistrationBuilder:
        self.registrations.append(transient(name, factory, teardown, **options))
        return self

    async def build(self) -> Container:
        return await self.container.build(self.registrations)

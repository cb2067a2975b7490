from __future__ import annotations

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, ClassVar

from ._config import ContainerConfig
from ._errors import (
    AlreadyRegisteredError,
    DuplicateServiceNameError,
    NotInitializedError,
    ServiceNotRegisteredError,
    SingletonNotInitializedError,
    UnregisteredDependencyError,
)
from ._graph import sort_topologically
from ._registration import (
    FactoryKind,
    Lifecycle,
    Registration,
    RegistrationBuilder,
    describe_target,
    invoke,
    validate_names,
)
from ._scope import RequestScope
from ._utils import maybe_await


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable


class Container:
    """Dependency injection container.

    - register singleton / scoped / transient services by name
    - resolve targets by injecting their declared dependencies positionally
    - request scopes for scoped services
    - ordered teardown of singletons, scoped and transient instances.

    Example:
      container = Container()
      await container.build([
          singleton("db", create_db, close_db),
          scoped("logger", create_logger),
          transient("worker", make_worker, depends_on=["logger", "db"]),
      ])

      async def handle_request():
          return await container.resolve(run_job, ["worker"])

      await container.start_scope(handle_request)
      await container.destroy()

    """

    _default: ClassVar[Container | None] = None

    def __init__(self, config: ContainerConfig | None = None) -> None:
        self.config = config or ContainerConfig()
        self.config.apply_logging()
        self._registry: dict[str, Registration] = {}
        self._singletons: dict[str, Any] = {}
        self._singleton_locks: dict[str, asyncio.Lock] = {}
        self._built = False

    @classmethod
    async def init(cls, registrations: Iterable[Registration], config: ContainerConfig | None = None) -> Container:
        """Build the process-default container, creating it on first use.

        `config` only applies when the default container is created; later calls
        add registrations to the existing one.
        """
        if cls._default is None:
            cls._default = cls(config)
        return await cls._default.build(registrations)

    @classmethod
    def instance(cls) -> Container:
        """Return the process-default container built with `init()`."""
        if cls._default is None or not cls._default.is_built:
            msg = "Container has not been initialized. Call Container.init() first."
            raise NotInitializedError(msg)
        return cls._default

    @classmethod
    def reset_instance(cls) -> None:
        """Forget the process-default container without tearing it down."""
        cls._default = None

    @property
    def is_built(self) -> bool:
        return self._built

    @property
    def registrations(self) -> list[Registration]:
        """Registered services in dependency order."""
        return list(self._registry.values())

    def registration_builder(self) -> RegistrationBuilder:
        return RegistrationBuilder(self)

    async def build(self, registrations: Iterable[Registration]) -> Container:
        """Register services, then create singletons unless `lazy_load` is set.

        Ordering runs over the union of existing and new registrations, so a
        cycle spanning several builds is still detected. Nothing is committed
        when ordering or name checks fail.
        """
        submitted = list(registrations)
        ordered = sort_topologically([*self._registry.values(), *submitted])

        names = [registration.name for registration in submitted]
        duplicates = [name for name, count in Counter(names).items() if count > 1]
        if duplicates:
            raise DuplicateServiceNameError(duplicates)

        already_registered = [name for name in names if name in self._registry]
        if already_registered:
            raise AlreadyRegisteredError(already_registered)

        self._registry = {registration.name: registration for registration in ordered}
        self._built = True
        logger.info("Registered %d services (%d total)", len(submitted), len(self._registry))

        if not self.config.lazy_load:
            await self._setup_singletons()

        return self

    async def get_service(self, name: str) -> Any:
        """Return an instance of the named service according to its lifecycle.

        - singleton: created on first request, cached for the container lifetime
        - scoped: created once per request scope (requires an open scope)
        - transient: created on every call.
        """
        self._require_built()
        registration = self._registry.get(name)
        if registration is None:
            raise ServiceNotRegisteredError(name)

        if registration.lifecycle is Lifecycle.SINGLETON:
            return await self._get_singleton(registration)

        if registration.lifecycle is Lifecycle.SCOPED:
            if RequestScope.has_scoped(name):
                return RequestScope.get_scoped(name)

            async with RequestScope.lock(name):
                if not RequestScope.has_scoped(name):
                    RequestScope.set_scoped(name, await self._create(registration))
            return RequestScope.get_scoped(name)

        return await self._create(registration)

    def get_singleton(self, name: str) -> Any:
        """Return an already created singleton without creating it."""
        self._require_built()
        registration = self._registry.get(name)
        if registration is None:
            raise ServiceNotRegisteredError(name)

        if registration.lifecycle is not Lifecycle.SINGLETON:
            msg = f"Service {name!r} is {registration.lifecycle.value}, not a singleton"
            raise ValueError(msg)

        if name not in self._singletons:
            raise SingletonNotInitializedError(name)
        return self._singletons[name]

    async def resolve(
        self,
        target: Callable[..., Any],
        dependency_names: Iterable[str] | None = None,
        *,
        kind: FactoryKind = FactoryKind.FUNCTION,
    ) -> Any:
        """Invoke `target` with its dependencies injected positionally.

        Dependencies are fetched one at a time in declared order. Transient
        dependencies created for this call are torn down once `target` has
        completed, whether it succeeded or raised. Every transient is released
        even when an earlier teardown fails; the first teardown error is raised.

        Raise UnregisteredDependencyError, before any factory runs, when a
        declared name is not registered.
        """
        names = describe_target(target) if dependency_names is None else validate_names(dependency_names)
        if not names:
            return await invoke(target, kind, ())

        self._require_built()
        missing = [name for name in dict.fromkeys(names) if name not in self._registry]
        if missing:
            raise UnregisteredDependencyError(missing, target)

        logger.debug("Resolving %s with %s", getattr(target, "__qualname__", target), names)
        instances: list[Any] = []
        transients: list[tuple[Registration, Any]] = []
        try:
            for name in names:
                instance = await self.get_service(name)
                instances.append(instance)
                registration = self._registry[name]
                if registration.lifecycle is Lifecycle.TRANSIENT:
                    transients.append((registration, instance))

            return await invoke(target, kind, instances)
        finally:
            await _release_all(transients)

    async def start_scope(self, callback: Callable[[], Any]) -> Any:
        """Run `callback` inside a new request scope and return its result.

        Every scoped service is created before `callback` runs. Scoped
        instances still alive when `callback` finishes are torn down, so calling
        `end_scope()` from inside the callback is optional.
        """
        async with self.scope():
            return await maybe_await(callback())

    @asynccontextmanager
    async def scope(self) -> AsyncIterator[Container]:
        """Async context manager form of `start_scope()`.

        Example:
          async with container.scope():
              await container.resolve(handle, ["logger"])

        """
        self._require_built()
        with RequestScope.activate():
            try:
                for registration in self._of_lifecycle(Lifecycle.SCOPED):
                    await self.get_service(registration.name)
                yield self
            finally:
                await self._teardown_scoped()

    async def end_scope(self) -> None:
        """Tear down the scoped instances of the current scope, dependents first."""
        self._require_built()
        await self._teardown_scoped()

    async def destroy(self) -> None:
        """Tear down created singletons, dependents first, and clear the container.

        A teardown error propagates; singletons torn down before it stay removed.
        """
        self._require_built()
        for registration in reversed(self._of_lifecycle(Lifecycle.SINGLETON)):
            if registration.name not in self._singletons:
                continue
            await registration.release(self._singletons[registration.name])
            del self._singletons[registration.name]

        self._registry.clear()
        self._singleton_locks.clear()
        self._built = False
        if type(self)._default is self:
            type(self).reset_instance()
        logger.info("Container destroyed")

    async def _get_singleton(self, registration: Registration) -> Any:
        name = registration.name
        if name in self._singletons:
            return self._singletons[name]

        # concurrent first requests wait for the same construction
        lock = self._singleton_locks.setdefault(name, asyncio.Lock())
        async with lock:
            if name not in self._singletons:
                self._singletons[name] = await self._create(registration)
        return self._singletons[name]

    async def _create(self, registration: Registration) -> Any:
        logger.debug("Creating %s service %r", registration.lifecycle.value, registration.name)
        return await self.resolve(registration.factory, registration.dependencies, kind=registration.kind)

    async def _setup_singletons(self) -> None:
        for registration in self._of_lifecycle(Lifecycle.SINGLETON):
            await self._get_singleton(registration)

    async def _teardown_scoped(self) -> None:
        for registration in reversed(self._of_lifecycle(Lifecycle.SCOPED)):
            if not RequestScope.has_scoped(registration.name):
                continue
            await registration.release(RequestScope.get_scoped(registration.name))
            RequestScope.delete_key(registration.name)

    def _of_lifecycle(self, lifecycle: Lifecycle) -> list[Registration]:
        return [registration for registration in self._registry.values() if registration.lifecycle is lifecycle]

    def _require_built(self) -> None:
        if not self._built:
            raise NotInitializedError


async def _release_all(instances: list[tuple[Registration, Any]]) -> None:
    """Release every instance, then raise the first teardown error, if any."""
    first_error: BaseException | None = None
    for registration, instance in instances:
        try:
            await registration.release(instance)
        except Exception as e:  # noqa: BLE001
            if first_error is None:
                first_error = e
            else:
                logger.error("Teardown of %r failed after an earlier failure: %s", registration.name, e)

    if first_error is not None:
        raise first_error

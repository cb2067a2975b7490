import unittest

import pytest

from wiredup import (
    AlreadyRegisteredError,
    Container,
    ContainerConfig,
    CyclicDependencyError,
    DuplicateServiceNameError,
    FactoryKind,
    NotInitializedError,
    RequestScope,
    ServiceNotRegisteredError,
    SingletonNotInitializedError,
    UnregisteredDependencyError,
    depends,
    scoped,
    singleton,
    transient,
)


class ContainerTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncTearDown(self):
        # leave no process-default container behind for the next test
        Container.reset_instance()


class TestBuild(ContainerTestCase):
    async def test_build_registers_in_dependency_order(self):
        container = await Container().build(
            [
                singleton("repo", lambda db: ("repo", db), depends_on=["db"]),
                singleton("db", lambda: "db"),
            ]
        )

        assert [reg.name for reg in container.registrations] == ["db", "repo"]
        assert await container.get_service("repo") == ("repo", "db")

    async def test_duplicate_names_raise_and_commit_nothing(self):
        container = Container()

        with pytest.raises(DuplicateServiceNameError) as ctx:
            await container.build([singleton("db", object), singleton("db", object), singleton("cache", object)])

        assert ctx.value.names == ("db",)
        assert container.registrations == []
        assert not container.is_built

    async def test_already_registered_name_raises(self):
        container = await Container().build([singleton("db", object)])

        with pytest.raises(AlreadyRegisteredError) as ctx:
            await container.build([singleton("cache", object), singleton("db", object)])

        assert ctx.value.names == ("db",)
        assert [reg.name for reg in container.registrations] == ["db"]

    async def test_cycle_raises_and_commits_nothing(self):
        container = Container()

        with pytest.raises(CyclicDependencyError):
            await container.build(
                [
                    singleton("a", lambda b: b, depends_on=["b"]),
                    singleton("b", lambda a: a, depends_on=["a"]),
                ]
            )

        assert container.registrations == []

    async def test_cycle_across_builds_is_detected(self):
        container = Container(ContainerConfig(lazy_load=True))
        await container.build([singleton("a", lambda b: b, depends_on=["b"])])

        with pytest.raises(CyclicDependencyError):
            await container.build([singleton("b", lambda a: a, depends_on=["a"])])

        assert [reg.name for reg in container.registrations] == ["a"]

    async def test_later_build_can_satisfy_earlier_dependency(self):
        container = Container(ContainerConfig(lazy_load=True))
        await container.build([singleton("repo", lambda db: ("repo", db), depends_on=["db"])])
        await container.build([singleton("db", lambda: "db")])

        assert [reg.name for reg in container.registrations] == ["db", "repo"]
        assert await container.get_service("repo") == ("repo", "db")

    async def test_eager_build_fails_on_unregistered_singleton_dependency(self):
        with pytest.raises(UnregisteredDependencyError):
            await Container().build([singleton("repo", lambda db: db, depends_on=["db"])])


class TestResolve(ContainerTestCase):
    async def test_zero_dependencies_invokes_target_without_build(self):
        container = Container()

        assert await container.resolve(lambda: 42) == 42
        assert await container.resolve(lambda: 42, []) == 42

    async def test_async_target_is_awaited(self):
        container = await Container().build([singleton("db", lambda: "db")])

        async def target(db):
            return f"query via {db}"

        assert await container.resolve(target, ["db"]) == "query via db"

    async def test_constructor_target(self):
        class Repo:
            def __init__(self, db):
                self.db = db

        container = await Container().build([singleton("db", lambda: "db")])
        repo = await container.resolve(Repo, ["db"], kind=FactoryKind.CONSTRUCTOR)

        assert isinstance(repo, Repo)
        assert repo.db == "db"

    async def test_dependencies_from_depends_decorator(self):
        @depends("db", "cache")
        def target(db, cache):
            return db, cache

        container = await Container().build([singleton("db", lambda: "db"), singleton("cache", lambda: "cache")])

        assert await container.resolve(target) == ("db", "cache")

    async def test_unregistered_dependency_raises_without_invoking_factories(self):
        created = []
        container = await Container(ContainerConfig(lazy_load=True)).build(
            [singleton("db", lambda: created.append("db"))]
        )

        with pytest.raises(UnregisteredDependencyError) as ctx:
            await container.resolve(lambda db, cache, queue: None, ["db", "cache", "queue"])

        assert ctx.value.missing == ("cache", "queue")
        assert "cache, queue" in str(ctx.value)
        assert created == []

    async def test_resolve_before_build_with_dependencies_raises(self):
        with pytest.raises(NotInitializedError):
            await Container().resolve(lambda db: db, ["db"])

    async def test_transitive_dependencies(self):
        container = await Container().build(
            [
                singleton("config", lambda: {"dsn": "sqlite://"}),
                singleton("db", lambda config: f"db({config['dsn']})", depends_on=["config"]),
                transient("repo", lambda db: f"repo({db})", depends_on=["db"]),
            ]
        )

        assert await container.resolve(lambda repo: repo, ["repo"]) == "repo(db(sqlite://))"


class TestGetService(ContainerTestCase):
    async def test_unknown_name_raises(self):
        container = await Container().build([])

        with pytest.raises(ServiceNotRegisteredError):
            await container.get_service("unknown")

    async def test_before_build_raises(self):
        with pytest.raises(NotInitializedError):
            await Container().get_service("db")

    async def test_get_singleton_before_creation_raises(self):
        container = await Container(ContainerConfig(lazy_load=True)).build([singleton("db", lambda: "db")])

        with pytest.raises(SingletonNotInitializedError):
            container.get_singleton("db")

        await container.get_service("db")
        assert container.get_singleton("db") == "db"

    async def test_get_singleton_rejects_other_lifecycles(self):
        container = await Container().build([transient("worker", object)])

        with pytest.raises(ValueError):
            container.get_singleton("worker")
        with pytest.raises(ServiceNotRegisteredError):
            container.get_singleton("unknown")


class TestScopes(ContainerTestCase):
    async def test_start_scope_requires_build(self):
        with pytest.raises(NotInitializedError):
            await Container().start_scope(lambda: None)
        with pytest.raises(NotInitializedError):
            await Container().end_scope()

    async def test_start_scope_returns_callback_result(self):
        container = await Container().build([])

        assert await container.start_scope(lambda: "result") == "result"

    async def test_explicit_end_scope_tears_down_dependents_first(self):
        events = []
        container = await Container().build(
            [
                scoped("session", lambda: "session", lambda _: events.append("close session")),
                scoped("repo", lambda session: "repo", lambda _: events.append("close repo"), depends_on=["session"]),
            ]
        )

        async def handle():
            await container.end_scope()
            assert RequestScope.keys() == ()

        await container.start_scope(handle)

        assert events == ["close repo", "close session"]

    async def test_scope_teardown_runs_when_callback_raises(self):
        released = []
        container = await Container().build([scoped("logger", object, released.append)])

        async def handle():
            raise RuntimeError("request failed")

        with pytest.raises(RuntimeError, match="request failed"):
            await container.start_scope(handle)

        assert len(released) == 1

    async def test_scope_store_not_visible_after_callback(self):
        container = await Container().build([scoped("logger", object)])

        await container.start_scope(lambda: None)

        assert not RequestScope.is_active()


class TestDestroy(ContainerTestCase):
    async def test_destroy_before_build_raises(self):
        with pytest.raises(NotInitializedError):
            await Container().destroy()

    async def test_destroy_tears_down_singletons_in_reverse_order(self):
        events = []
        container = await Container().build(
            [
                singleton("db", lambda: "db", lambda _: events.append("close db")),
                singleton("cache", lambda db: "cache", lambda _: events.append("close cache"), depends_on=["db"]),
                singleton("clock", lambda: "clock"),
            ]
        )

        await container.destroy()

        assert events == ["close cache", "close db"]
        assert container.registrations == []
        with pytest.raises(NotInitializedError):
            await container.get_service("db")

    async def test_destroy_skips_singletons_never_created(self):
        released = []
        container = await Container(ContainerConfig(lazy_load=True)).build([singleton("db", object, released.append)])

        await container.destroy()

        assert released == []

    async def test_teardown_failure_propagates_and_keeps_processed_entries_cleared(self):
        released = []

        def broken(_):
            raise OSError("close failed")

        container = await Container().build(
            [
                singleton("db", lambda: "db", broken),
                singleton("cache", lambda db: "cache", released.append, depends_on=["db"]),
            ]
        )

        with pytest.raises(OSError, match="close failed"):
            await container.destroy()

        assert released == ["cache"]
        assert container.get_singleton("db") == "db"
        with pytest.raises(SingletonNotInitializedError):
            container.get_singleton("cache")

    async def test_method_name_teardown_on_constructed_instance(self):
        class Connection:
            closed = False

            def close(self):
                self.closed = True

        container = await Container().build([singleton("db", Connection, "close", kind=FactoryKind.CONSTRUCTOR)])
        conn = await container.get_service("db")

        await container.destroy()

        assert conn.closed


class TestDefaultContainer(ContainerTestCase):
    async def test_instance_before_init_raises(self):
        with pytest.raises(NotInitializedError):
            Container.instance()

    async def test_init_and_instance(self):
        container = await Container.init([singleton("db", lambda: "db")])

        assert Container.instance() is container
        assert await Container.instance().get_service("db") == "db"

        again = await Container.init([singleton("cache", lambda: "cache")])
        assert again is container
        assert [reg.name for reg in container.registrations] == ["db", "cache"]

    async def test_destroy_resets_instance(self):
        container = await Container.init([])
        await container.destroy()

        with pytest.raises(NotInitializedError):
            Container.instance()

    async def test_independent_containers_coexist(self):
        first = await Container().build([singleton("db", object)])
        second = await Container().build([singleton("db", object)])

        assert await first.get_service("db") is not await second.get_service("db")


class TestScenarios(ContainerTestCase):
    async def asyncSetUp(self):
        self.events = []
        self.db_created = 0
        self.loggers = []

        def create_db():
            self.db_created += 1
            return {"name": "db"}

        def close_db(db):
            self.events.append("close db")

        def create_logger():
            logger = {"name": f"logger-{len(self.loggers)}"}
            self.loggers.append(logger)
            return logger

        def make_worker(logger, db):
            return {"logger": logger, "db": db}

        def release_worker(worker):
            self.events.append("release worker")

        self.container = await Container().build(
            [
                singleton("db", create_db, close_db),
                scoped("logger", create_logger),
                transient("worker", make_worker, release_worker, depends_on=["logger", "db"]),
            ]
        )

    async def test_request_resolves_fresh_worker_and_releases_it(self):
        assert self.db_created == 1

        async def handle():
            def run_job(worker):
                self.events.append("run job")
                return worker

            worker = await self.container.resolve(run_job, ["worker"])
            assert self.events == ["run job", "release worker"]
            assert worker["logger"] is self.loggers[0]
            assert worker["db"] is await self.container.get_service("db")

        await self.container.start_scope(handle)

        assert len(self.loggers) == 1
        assert self.db_created == 1
        assert "close db" not in self.events

    async def test_sequential_scopes_then_destroy(self):
        seen = []

        async def handle():
            seen.append(await self.container.get_service("logger"))

        await self.container.start_scope(handle)
        await self.container.start_scope(handle)

        assert seen[0] is not seen[1]

        await self.container.destroy()

        assert self.events.count("close db") == 1
        with pytest.raises(NotInitializedError):
            await self.container.get_service("db")

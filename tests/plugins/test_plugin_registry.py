"""Tests for the registry of live annotator instances."""

import threading

import pytest

from annotator_host.errors import NotFound
from annotator_host.models.descriptor import PluginDescriptor
from annotator_host.plugins.eviction import EvictionScheduler
from annotator_host.plugins.plugin_registry import PluginRegistry, RegistryEntry, RegistryKey


class FakeAnnotator:
    def __init__(self, version):
        self.version = version
        self.status_observers = []
        self.task_parameters = None

    def uninstall(self):
        self.version = None


class FakeSource:
    """Descriptor source whose installed versions tests can change."""

    def __init__(self):
        self.versions: dict[str, str] = {}
        self.created: list[FakeAnnotator] = []

    def install(self, annotator_id: str, version: str) -> None:
        self.versions[annotator_id] = version

    def uninstall(self, annotator_id: str) -> None:
        del self.versions[annotator_id]

    def get_descriptor(self, annotator_id):
        version = self.versions.get(annotator_id)
        if version is None:
            return None

        def factory():
            annotator = FakeAnnotator(version)
            self.created.append(annotator)
            return annotator

        return PluginDescriptor(
            plugin_id=annotator_id,
            version=version,
            factory=factory,
            resource_resolver=lambda path: None,
            has_task_webapp=True,
        )


@pytest.fixture
def source():
    source = FakeSource()
    source.install("syllabifier", "1.0")
    return source


class TestRegistryKey:
    """Tests for RegistryKey."""

    def test_plugin_scoped_key(self):
        """Test a key without a task."""
        key = RegistryKey("syllabifier")
        assert key.context_id is None
        assert str(key) == "syllabifier"

    def test_context_scoped_key(self):
        """Test a key for a task."""
        key = RegistryKey("syllabifier", "task123")
        assert str(key) == "syllabifier?task123"
        assert key != RegistryKey("syllabifier", "task456")


class TestPluginRegistry:
    """Tests for PluginRegistry."""

    def test_same_instance_while_version_unchanged(self, source):
        """The same instance is returned until the version changes."""
        registry = PluginRegistry(source)

        first = registry.get("syllabifier")
        second = registry.get("syllabifier")

        assert first is second
        assert first.instance is second.instance
        assert len(source.created) == 1

    def test_new_instance_when_version_changes(self, source):
        """Test a new version replaces the cached instance."""
        registry = PluginRegistry(source)
        old = registry.get("syllabifier")

        source.install("syllabifier", "2.0")
        new = registry.get("syllabifier")

        assert new.instance is not old.instance
        assert new.version == "2.0"
        assert old.version == "1.0"  # replaced, not mutated
        assert registry.get("syllabifier") is new

    def test_new_instance_after_instance_uninstalled(self, source):
        """An uninstalled instance is replaced."""
        registry = PluginRegistry(source)
        old = registry.get("syllabifier")

        old.instance.uninstall()

        assert registry.get("syllabifier").instance is not old.instance

    def test_not_installed(self, source):
        """Unknown annotators are NotFound."""
        registry = PluginRegistry(source)

        with pytest.raises(NotFound):
            registry.get("nonexistent")

    def test_removed_annotator_drops_cached_entry(self, source):
        """Removing an annotator drops its cached entry."""
        registry = PluginRegistry(source)
        registry.get("syllabifier")

        source.uninstall("syllabifier")

        with pytest.raises(NotFound):
            registry.get("syllabifier")
        assert RegistryKey("syllabifier") not in registry

    def test_context_scoped_entries_are_independent(self, source):
        """Each task gets its own instance."""
        registry = PluginRegistry(source)

        a = registry.get("syllabifier", "task-a")
        b = registry.get("syllabifier", "task-b")

        assert a.instance is not b.instance
        assert registry.get("syllabifier", "task-a") is a
        assert set(registry.keys()) == {
            RegistryKey("syllabifier", "task-a"),
            RegistryKey("syllabifier", "task-b"),
        }

    def test_on_new_instance_called_once_per_instance(self, source):
        """The new-instance hook runs once per instance."""
        seen = []
        registry = PluginRegistry(
            source, on_new_instance=lambda key, instance: seen.append((key, instance))
        )

        entry = registry.get("syllabifier", "task123")
        registry.get("syllabifier", "task123")

        assert seen == [(RegistryKey("syllabifier", "task123"), entry.instance)]

    def test_status_observer_registered(self, source):
        """New instances get a status observer."""
        registry = PluginRegistry(source)

        entry = registry.get("syllabifier")

        assert len(entry.instance.status_observers) == 1
        entry.instance.status_observers[0]("Installing...")  # just logs

    def test_peek_does_not_create(self, source):
        """Peeking never creates an entry."""
        registry = PluginRegistry(source)

        assert registry.peek("syllabifier") is None
        entry = registry.get("syllabifier")
        assert registry.peek("syllabifier") is entry
        assert len(registry) == 1


class TestEviction:
    """Tests for eviction of context-scoped entries."""

    def test_only_context_scoped_entries_are_scheduled(self, source, timers):
        """Only task entries are scheduled for eviction."""
        registry = PluginRegistry(source, scheduler=EvictionScheduler(timer_factory=timers))

        registry.get("syllabifier")
        assert timers.created == []

        entry = registry.get("syllabifier", "task123")
        assert len(timers.created) == 1
        assert entry.eviction is not None

    def test_eviction_removes_entry(self, source, timers):
        """Test eviction removes the entry."""
        registry = PluginRegistry(source, scheduler=EvictionScheduler(timer_factory=timers))
        entry = registry.get("syllabifier", "task123")

        timers.created[0].fire()

        assert RegistryKey("syllabifier", "task123") not in registry
        assert registry.get("syllabifier", "task123").instance is not entry.instance

    def test_stale_eviction_leaves_replacement(self, source, timers):
        """An eviction for a replaced entry leaves the replacement."""
        registry = PluginRegistry(source, scheduler=EvictionScheduler(timer_factory=timers))
        registry.get("syllabifier", "task123")

        source.install("syllabifier", "2.0")
        replacement = registry.get("syllabifier", "task123")
        assert len(timers.created) == 2

        # the first eviction captured the old entry
        timers.created[0].fire()

        assert registry.peek("syllabifier", "task123") is replacement

        timers.created[1].fire()
        assert registry.peek("syllabifier", "task123") is None

    def test_remove_if_current_compares_identity(self, source):
        """Removal compares entries by identity."""
        registry = PluginRegistry(source)
        entry = registry.get("syllabifier", "task123")
        key = RegistryKey("syllabifier", "task123")
        lookalike = RegistryEntry(
            descriptor=entry.descriptor, instance=entry.instance, version=entry.version
        )

        assert not registry.remove_if_current(key, lookalike)
        assert registry.remove_if_current(key, entry)
        assert not registry.remove_if_current(key, entry)


class TestConcurrency:
    """Tests with real threads."""

    def test_concurrent_gets_share_one_instance(self, source):
        """Simultaneous first requests for a key create a single instance."""
        registry = PluginRegistry(source)
        barrier = threading.Barrier(8)
        results = []

        def request():
            barrier.wait()
            results.append(registry.get("syllabifier", "task123").instance)

        threads = [threading.Thread(target=request) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(5)

        assert len(results) == 8
        assert all(instance is results[0] for instance in results)
        assert len(source.created) == 1

    def test_eviction_racing_upgrade_keeps_replacement(self, source):
        """An eviction firing after an upgrade doesn't remove the new instance."""
        intervals = iter([0.05, 60])
        scheduler = EvictionScheduler(
            timer_factory=lambda interval, function: threading.Timer(next(intervals), function)
        )
        registry = PluginRegistry(source, scheduler=scheduler)
        try:
            old = registry.get("syllabifier", "task123")

            source.install("syllabifier", "2.0")
            replacement = registry.get("syllabifier", "task123")

            old.eviction.timer.join(5)

            assert registry.peek("syllabifier", "task123") is replacement
            assert replacement.instance is not old.instance
        finally:
            scheduler.shutdown()

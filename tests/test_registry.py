"""Tests del registro de dispositivos en memoria."""

import threading

from driving_ingest.registry import DeviceRegistry

DEFAULTS = {"crash": 3.0, "braking": 2.0, "accel": 1.5, "cornering": 2.0}


class TestDeviceRegistry:

    def test_get_or_create_uses_defaults(self):
        registry = DeviceRegistry(DEFAULTS)

        device = registry.get_or_create("d1")

        assert device.device_id == "d1"
        assert device.connected is True
        assert device.thresholds == DEFAULTS
        assert device.last_update is not None

    def test_get_or_create_is_idempotent(self):
        """La segunda llamada no reinicia los umbrales."""
        registry = DeviceRegistry(DEFAULTS)
        first = registry.get_or_create("d1")
        registry.update_status("d1", {"crash": 9.0, "braking": 9.0, "accel": 9.0, "cornering": 9.0})

        second = registry.get_or_create("d1")

        assert first.thresholds == DEFAULTS
        assert second.thresholds["crash"] == 9.0
        assert len(registry) == 1

    def test_get_unknown_returns_none(self):
        assert DeviceRegistry(DEFAULTS).get("nope") is None

    def test_readers_get_copies(self):
        registry = DeviceRegistry(DEFAULTS)
        registry.get_or_create("d1")

        snapshot = registry.get("d1")
        snapshot.thresholds["crash"] = 100.0
        snapshot.connected = False

        assert registry.get("d1").thresholds["crash"] == 3.0
        assert registry.get("d1").connected is True

    def test_defaults_not_shared_between_devices(self):
        registry = DeviceRegistry(DEFAULTS)
        registry.get_or_create("d1")
        registry.update_status("d1", {"crash": 7.0})

        assert registry.get_or_create("d2").thresholds == DEFAULTS
        assert registry.default_thresholds == DEFAULTS

    def test_update_status_replaces_all_thresholds(self):
        registry = DeviceRegistry(DEFAULTS)

        device = registry.update_status("d2", {"crash": 5.0, "braking": None, "accel": None, "cornering": None})

        assert device.connected is True
        assert device.thresholds == {"crash": 5.0, "braking": None, "accel": None, "cornering": None}

    def test_update_status_refreshes_last_update(self):
        registry = DeviceRegistry(DEFAULTS)
        created = registry.get_or_create("d1").last_update

        updated = registry.update_status("d1", DEFAULTS).last_update

        assert updated >= created

    def test_list_and_first(self):
        registry = DeviceRegistry(DEFAULTS)
        assert registry.first() is None

        registry.get_or_create("d1")
        registry.get_or_create("d2")

        assert [d.device_id for d in registry.list()] == ["d1", "d2"]
        assert registry.first().device_id == "d1"

    def test_concurrent_get_or_create_creates_once(self):
        registry = DeviceRegistry(DEFAULTS)
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            registry.get_or_create("d1")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 1

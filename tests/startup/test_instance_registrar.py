import os

import pytest

from startup.instance_registrar import InstanceRegistrar


@pytest.fixture
def lock_dir(tmp_path):
    return tmp_path / "locks"


def test_register_and_unregister(lock_dir):
    registrar = InstanceRegistrar("/srv/farm", lock_dir=lock_dir)

    assert registrar.register() is True
    assert registrar.is_registered
    assert registrar.holder_pid() == os.getpid()

    registrar.unregister()
    assert not registrar.is_registered


def test_second_instance_is_rejected_and_first_keeps_lock(lock_dir):
    first = InstanceRegistrar("/srv/farm", lock_dir=lock_dir)
    second = InstanceRegistrar("/srv/farm", lock_dir=lock_dir)

    assert first.register() is True
    assert second.register() is False
    assert first.is_registered
    assert not second.is_registered
    assert first.holder_pid() == os.getpid()

    first.unregister()
    assert second.register() is True
    second.unregister()


def test_register_twice_on_same_registrar(lock_dir):
    registrar = InstanceRegistrar("/srv/farm", lock_dir=lock_dir)

    assert registrar.register() is True
    assert registrar.register() is True
    registrar.unregister()


def test_unregister_is_idempotent(lock_dir):
    registrar = InstanceRegistrar("/srv/farm", lock_dir=lock_dir)

    registrar.unregister()
    registrar.register()
    registrar.unregister()
    registrar.unregister()

    assert not registrar.is_registered


def test_network_groups_use_separate_locks(lock_dir):
    plain = InstanceRegistrar("/srv/farm", lock_dir=lock_dir)
    grouped = InstanceRegistrar("/srv/farm", network_group="eu", lock_dir=lock_dir)

    assert plain.lock_file != grouped.lock_file
    assert plain.register() is True
    assert grouped.register() is True

    plain.unregister()
    grouped.unregister()


def test_lock_name_is_stable():
    assert InstanceRegistrar.lock_name("/srv/farm") == InstanceRegistrar.lock_name("/srv/farm")
    assert InstanceRegistrar.lock_name("/srv/farm").startswith("botfarm-")
    assert InstanceRegistrar.lock_name("/srv/farm") != InstanceRegistrar.lock_name("/srv/other")


def test_unusable_lock_dir_reports_failure(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file")

    registrar = InstanceRegistrar("/srv/farm", lock_dir=blocker)

    assert registrar.register() is False
    assert not registrar.is_registered

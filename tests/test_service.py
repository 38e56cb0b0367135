import filecmp
import stat
from datetime import datetime

import pytest

from migration.errors import ComponentFatal, LockError, PreconditionError
from migration.handlers import DB_PASSWORD_SENTINEL
from migration.layout import BACKUP_DIR_MODE
from migration.types import Component, ComponentSelection, RunState

NOW = datetime(2024, 1, 2, 3, 4, 5)


def _trees_equal(left, right) -> bool:
    comparison = filecmp.dircmp(left, right)
    if comparison.left_only or comparison.right_only or comparison.diff_files or comparison.funny_files:
        return False
    return all(_trees_equal(left / name, right / name) for name in comparison.common_dirs)


def test_export_everything_writes_full_layout(harness):
    report = harness.service.export(ComponentSelection.everything(), now=NOW)

    backup = report.backup_dir
    assert backup == harness.paths.backup_root / "20240102-030405"
    assert stat.S_IMODE(backup.stat().st_mode) == BACKUP_DIR_MODE
    assert (backup / "format").read_text(encoding="utf-8").strip() == "1"
    # encryption is off in the fixture, so no keys/
    assert sorted(p.name for p in backup.iterdir()) == [
        "apps",
        "certs",
        "config.php",
        "data",
        "database.sql",
        "format",
    ]
    assert report.state is RunState.DONE
    assert harness.maintenance.enabled == 1
    assert harness.maintenance.disabled == 1


def test_export_subset_touches_only_selected_components(harness):
    selection = ComponentSelection.of([Component.CONFIG, Component.CERTS])
    report = harness.service.export(selection, now=NOW)

    assert sorted(p.name for p in report.backup_dir.iterdir()) == ["certs", "config.php", "format"]
    assert "db:dump" not in harness.journal
    assert [source.name for source, _ in harness.sync.calls] == ["certs"]


def test_round_trip_reproduces_state(harness, target):
    harness.status.encryption = True
    keys = harness.paths.data_dir / "alice" / "files_encryption"
    keys.mkdir()
    (keys / "alice.publicKey").write_text("pub", encoding="utf-8")

    exported = harness.service.export(ComponentSelection.everything(), now=NOW)
    target.service.import_(ComponentSelection.everything(), exported.backup_dir)

    assert _trees_equal(harness.paths.apps_dir, target.paths.apps_dir)
    assert _trees_equal(harness.paths.data_dir, target.paths.data_dir)
    assert _trees_equal(harness.paths.certs_dir, target.paths.certs_dir)
    assert target.database.content == harness.database.content
    assert target.database.recreated_with == "target-secret"

    source_config = harness.paths.config_file.read_text(encoding="utf-8")
    target_config = target.paths.config_file.read_text(encoding="utf-8")
    assert target_config == source_config.replace("source-secret", "target-secret")
    assert DB_PASSWORD_SENTINEL not in target_config


def test_import_is_rerunnable(harness, target):
    exported = harness.service.export(ComponentSelection.everything(), now=NOW)
    selection = ComponentSelection.of([Component.APPS, Component.DATA])
    target.service.import_(selection, exported.backup_dir)
    target.service.import_(selection, exported.backup_dir)
    assert _trees_equal(harness.paths.data_dir, target.paths.data_dir)
    assert target.maintenance.enabled == 2
    assert target.maintenance.disabled == 2


def test_export_database_failure_stops_before_config(harness):
    harness.database.fail_dump = True
    selection = ComponentSelection.of([Component.DATABASE, Component.CONFIG])

    with pytest.raises(ComponentFatal):
        harness.service.export(selection, now=NOW)

    backup = harness.paths.backup_root / "20240102-030405"
    assert not (backup / "config.php").exists()
    assert not (backup / "apps").exists()
    assert not (backup / "data").exists()
    assert harness.maintenance.disabled == 1
    assert "ERROR: Unable to export database" in harness.text


def test_fatal_keeps_earlier_components(harness, target):
    exported = harness.service.export(ComponentSelection.everything(), now=NOW)
    target.database.fail_load = True
    with pytest.raises(ComponentFatal):
        target.service.import_(ComponentSelection.everything(), exported.backup_dir)
    # apps ran before the database and are not rolled back
    assert _trees_equal(harness.paths.apps_dir, target.paths.apps_dir)
    assert not target.paths.config_file.exists()
    assert not target.paths.data_dir.exists()


def test_keys_disabled_export_still_succeeds(harness):
    report = harness.service.export(ComponentSelection.of([Component.KEYS]), now=NOW)
    assert report.ok
    assert harness.sync.calls == []


def test_import_skips_absent_optional_components(harness, target):
    exported = harness.service.export(ComponentSelection.of([Component.APPS]), now=NOW)
    report = target.service.import_(
        ComponentSelection.of([Component.APPS, Component.KEYS, Component.CERTS]), exported.backup_dir
    )
    assert report.ok
    assert "Backup contains no certificates, skipping" in target.text
    assert "Backup contains no encryption keys, skipping" in target.text


def test_unprivileged_run_fails_before_side_effects(harness):
    harness.privileged = False
    with pytest.raises(PreconditionError):
        harness.service.export(ComponentSelection.everything(), now=NOW)
    assert harness.journal == []
    assert not harness.paths.backup_root.exists()


def test_unreachable_database_fails_before_side_effects(harness):
    harness.database.ready = False
    with pytest.raises(PreconditionError):
        harness.service.export(ComponentSelection.everything(), now=NOW)
    assert harness.journal == []


def test_lock_failure_aborts_export(harness):
    harness.maintenance.fail_enable = True
    with pytest.raises(LockError):
        harness.service.export(ComponentSelection.everything(), now=NOW)
    assert harness.sync.calls == []


def test_import_warns_about_unstamped_backup(harness, target):
    exported = harness.service.export(ComponentSelection.of([Component.APPS]), now=NOW)
    (exported.backup_dir / "format").unlink()
    target.service.import_(ComponentSelection.of([Component.APPS]), exported.backup_dir)
    assert "WARNING:" in target.text
    assert "no format stamp" in target.text


def test_import_refuses_newer_format(harness, target):
    exported = harness.service.export(ComponentSelection.of([Component.APPS]), now=NOW)
    (exported.backup_dir / "format").write_text("9\n", encoding="utf-8")
    with pytest.raises(PreconditionError):
        target.service.import_(ComponentSelection.of([Component.APPS]), exported.backup_dir)
    assert target.journal == []


def test_import_checks_preconditions_before_opening_backup(target, tmp_path):
    target.privileged = False
    with pytest.raises(PreconditionError, match="needs to run as root"):
        target.service.import_(ComponentSelection.everything(), tmp_path / "missing")
    assert "Waiting for the database" not in target.text

import pytest

from migration.errors import UsageError
from migration.selection import HelpRequested, parse_command_line, resolve_selection
from migration.types import PROCESSING_ORDER, Component, ComponentSelection, Direction


def test_no_flags_selects_everything_for_export():
    selection = resolve_selection([], Direction.EXPORT)
    assert selection == ComponentSelection.everything()
    assert list(selection) == list(PROCESSING_ORDER)


def test_no_flags_with_backup_dir_selects_everything_for_import():
    selection = resolve_selection([], Direction.IMPORT, ["/tmp/backup"])
    assert selection.is_everything()


def test_flags_select_subset_in_fixed_order():
    selection = resolve_selection(["-d", "-a", "-b"], Direction.EXPORT)
    assert list(selection) == [Component.APPS, Component.DATABASE, Component.DATA]
    assert Component.CONFIG not in selection


def test_import_flags_with_path_do_not_default_to_everything():
    selection = resolve_selection(["c"], Direction.IMPORT, ["/tmp/backup"])
    assert list(selection) == [Component.CONFIG]


def test_unknown_flag_is_usage_error():
    with pytest.raises(UsageError):
        resolve_selection(["-z"], Direction.EXPORT)


def test_import_requires_exactly_one_backup_dir():
    with pytest.raises(UsageError):
        resolve_selection([], Direction.IMPORT, [])
    with pytest.raises(UsageError):
        resolve_selection([], Direction.IMPORT, ["one", "two"])


def test_export_rejects_positionals():
    with pytest.raises(UsageError):
        resolve_selection([], Direction.EXPORT, ["stray"])


def test_parse_command_line_combined_short_flags():
    command = parse_command_line(["-bc"], Direction.EXPORT)
    assert list(command.selection) == [Component.DATABASE, Component.CONFIG]
    assert command.backup_dir is None


def test_parse_command_line_import_path():
    command = parse_command_line(["-e", "-f", "/srv/backups/20240101-000000"], Direction.IMPORT)
    assert list(command.selection) == [Component.KEYS, Component.CERTS]
    assert str(command.backup_dir) == "/srv/backups/20240101-000000"


def test_parse_command_line_rejects_unknown_flag(capsys):
    with pytest.raises(UsageError):
        parse_command_line(["-x"], Direction.EXPORT)
    assert "usage:" in capsys.readouterr().err


def test_parse_command_line_missing_backup_dir(capsys):
    with pytest.raises(UsageError):
        parse_command_line(["-a"], Direction.IMPORT)
    assert "usage:" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [["-h"], ["-a", "-h"], ["-x", "-h"]])
def test_help_short_circuits(argv, capsys):
    with pytest.raises(HelpRequested):
        parse_command_line(argv, Direction.IMPORT)
    assert "usage:" in capsys.readouterr().out

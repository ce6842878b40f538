import curses
import locale
from datetime import date

import pytest

from grid_edit import (
    CTRL_E, CTRL_N, CTRL_O, CTRL_T, CTRL_X, GridEditor, ImportWorker, configure_locale, main,
    parse_filter_date, translate_key,
)
from grid_state import (
    ARROW_DOWN, BACKSPACE, DELETE, EDITING, ENTER, ESCAPE, IDLE, SELECTED, ImportFailed,
    ImportLoaded, KeyPress, visible_view,
)


@pytest.fixture
def editor():
    return GridEditor()


def test_translate_key():
    assert translate_key(curses.KEY_DOWN) == KeyPress(ARROW_DOWN)
    assert translate_key(10) == KeyPress(ENTER)
    assert translate_key(27) == KeyPress(ESCAPE)
    assert translate_key(curses.KEY_DC) == KeyPress(DELETE)
    assert translate_key(127) == KeyPress(BACKSPACE)
    assert translate_key(ord('a')) == KeyPress('a')
    assert translate_key(CTRL_N) is None


def test_parse_filter_date():
    assert parse_filter_date('01-02-2025') == date(2025, 2, 1)
    assert parse_filter_date('2025-02-01') == date(2025, 2, 1)
    assert parse_filter_date('soon') is None


def test_arrow_from_idle_selects_first_cell(editor):
    assert editor.state.mode == IDLE
    editor.handle_grid_key(curses.KEY_DOWN)
    assert editor.state.mode == SELECTED
    assert editor.state.selection.row_id == 1
    assert editor.state.selection.column_key == 'id'


def test_typing_edits_selected_cell(editor):
    editor.handle_grid_key(curses.KEY_RIGHT)
    editor.handle_grid_key(curses.KEY_RIGHT)
    for key in (ord('H'), ord('i')):
        editor.handle_grid_key(key)
    assert editor.state.mode == EDITING
    assert editor.status_message == "-- EDIT --"
    editor.handle_grid_key(10)
    assert editor.state.store.get(1).job_request == 'Hi'
    assert editor.status_message == "Saved"


def test_shortcuts_are_ignored_while_editing(editor):
    editor.handle_grid_key(curses.KEY_DOWN)
    editor.handle_grid_key(curses.KEY_RIGHT)
    editor.handle_grid_key(ord('x'))
    assert editor.handle_grid_key(CTRL_X) is True
    editor.handle_grid_key(CTRL_N)
    assert len(editor.state.store) == 5


def test_control_shortcuts(editor):
    editor.handle_grid_key(CTRL_N)
    assert len(editor.state.store) == 6
    editor.handle_grid_key(CTRL_T)
    assert not all(c.visible for c in editor.state.columns)
    editor.handle_grid_key(CTRL_O)
    assert editor.mode == 'COMMAND'
    assert editor.handle_grid_key(CTRL_X) is False


def test_sort_shortcut_uses_selected_column(editor):
    editor.handle_grid_key(curses.KEY_DOWN)
    for _ in range(9):
        editor.handle_grid_key(curses.KEY_RIGHT)
    editor.handle_grid_key(CTRL_E)
    assert [r.id for r in editor.state.store] == [5, 2, 3, 4, 1]
    assert editor.status_message == "Sorted by estValue (ascending)"


def test_command_line_typing(editor):
    editor.handle_grid_key(CTRL_O)
    for ch in 'sort estValue':
        editor.handle_command_mode(ord(ch))
    assert editor.status_message == ':sort estValue'
    editor.handle_command_mode(10)
    assert editor.mode == 'GRID'
    assert editor.state.sort.column_key == 'estValue'


def test_live_search(editor):
    editor.enter_search_mode()
    for ch in 'design':
        editor.handle_search_mode(ord(ch))
    assert [r.id for r in visible_view(editor.state)] == [2, 4]
    editor.handle_search_mode(27)
    assert editor.state.search == ''
    assert editor.mode == 'GRID'


def test_filter_commands(editor):
    editor.execute_command('filter status Complete')
    editor.execute_command('find design')
    assert [r.id for r in visible_view(editor.state)] == [4]
    editor.execute_command('filter status Complete')
    editor.execute_command('filter status Blocked')
    assert visible_view(editor.state) == []
    editor.execute_command('clear')
    assert len(visible_view(editor.state)) == 5


def test_filter_with_spaces_in_value(editor):
    editor.execute_command('filter status Need to start')
    assert [r.id for r in visible_view(editor.state)] == [2]
    editor.execute_command('options submitter')
    assert editor.status_message.startswith('submitter: Aisha Patel, Irfan Khan')


def test_dates_command(editor):
    editor.execute_command('dates 01-01-2025 31-01-2025')
    assert [r.id for r in visible_view(editor.state)] == [4, 5]
    editor.execute_command('dates tomorrow 31-01-2025')
    assert editor.status_message == "Dates must be DD-MM-YYYY"
    editor.execute_command('dates')
    assert len(visible_view(editor.state)) == 5


def test_visibility_commands(editor):
    editor.execute_command('hide url')
    assert [c.key for c in editor.state.columns if not c.visible] == ['url']
    editor.execute_command('show url')
    assert all(c.visible for c in editor.state.columns)
    editor.execute_command('fields')
    assert {c.key for c in editor.state.columns if not c.visible} == {'url', 'submitted'}


def test_quit_and_unknown(editor):
    assert editor.execute_command('q') is False
    assert editor.execute_command('bogus') is True
    assert editor.status_message == "Unknown command: bogus"


def test_export_then_import(editor, tmp_path):
    path = str(tmp_path / 'rows.json')
    editor.execute_command('new')
    editor.execute_command(f'w {path}')
    assert editor.status_message.startswith('Exported 6 rows')

    fresh = GridEditor(rows=[])
    event = fresh.worker.read(path)
    assert isinstance(event, ImportLoaded)
    fresh.dispatch(event)
    assert fresh.state.store == editor.state.store


def test_import_command_runs_in_background(editor, tmp_path):
    path = tmp_path / 'more.csv'
    path.write_text('header\nFrom file,01-04-2025\n')
    editor.execute_command(f'e {path}')
    assert editor.state.import_pending
    event = editor.worker.results.get(timeout=5)
    editor.dispatch(event)
    assert not editor.state.import_pending
    assert editor.state.store.get(6).job_request == 'From file'
    assert editor.status_message == "Appended 1 rows"


def test_missing_import_file_is_blocking_notice(editor, tmp_path):
    event = ImportWorker().read(str(tmp_path / 'absent.json'))
    assert isinstance(event, ImportFailed)
    editor.dispatch(event)
    assert editor.blocking_message.startswith('Failed to load')


def test_export_failure_is_reported(editor, tmp_path):
    editor.execute_command(f'w {tmp_path / "missing" / "rows.json"}')
    assert editor.status_message.startswith('Export failed')


def test_main_enables_locale_collation(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(locale, 'setlocale', lambda category, name=None: calls.append((category, name)))
    monkeypatch.setattr(curses, 'wrapper', lambda func, *args: None)
    monkeypatch.setattr('sys.argv', ['workgrid'])
    monkeypatch.setenv('WORKGRID_LOG', str(tmp_path / 'workgrid.log'))
    main()
    assert (locale.LC_COLLATE, '') in calls


def test_unsupported_locale_keeps_running(monkeypatch):
    def refuse(category, name=None):
        raise locale.Error('unsupported locale setting')

    monkeypatch.setattr(locale, 'setlocale', refuse)
    configure_locale()

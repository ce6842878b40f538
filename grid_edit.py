#!/usr/bin/env python3
"""
Work-item grid editor
Keyboard-driven spreadsheet view over work-item rows, curses-powered
"""

import curses
import locale
import logging
import os
import queue
import sys
import threading
import time
from datetime import date
from typing import List, Optional, Tuple

from grid_address import visible_columns
from grid_codec import ParseFailure, detect_format, read_import_payload, write_export
from grid_filter import INCLUSION_FIELDS, distinct_values
from grid_schema import SAMPLE_ROWS, ColumnDescriptor, cell_text, parse_date
from grid_sort import ASCENDING
from grid_state import (
    ARROW_DELTAS, ARROW_DOWN, ARROW_LEFT, ARROW_RIGHT, ARROW_UP, BACKSPACE, DELETE, EDITING,
    ENTER, ESCAPE, IDLE, Blur, ClearFilters, EditingEnded, EditingStarted, ImportFailed,
    ImportLoaded, ImportRequested, KeyPress, NewRow, Notice, PointerEdit, PointerSelect,
    ReadFile, SelectionChanged, SetColumnVisible, SetDateRange, SetSearch, ToggleFilter,
    ToggleHiddenFields, ToggleSort, grid_address, initial_state, reduce, visible_view,
)

logger = logging.getLogger(__name__)

APP_TITLE = "WorkGrid"
LOG_ENV = 'WORKGRID_LOG'
DEFAULT_LOG_FILE = 'workgrid.log'
INPUT_TIMEOUT_MS = 100
ROW_NUMBER_WIDTH = 6

COLUMN_WIDTHS = {
    'id': 5,
    'jobRequest': 34,
    'submitted': 12,
    'status': 15,
    'submitter': 16,
    'url': 18,
    'assigned': 18,
    'priority': 10,
    'dueDate': 12,
    'estValue': 12,
}

# Editor shortcuts (control keys, so printable keys stay free for cell editing)
CTRL_E = 5    # sort by selected column
CTRL_F = 6    # search
CTRL_N = 14   # new row
CTRL_O = 15   # command line
CTRL_T = 20   # hide/show fields
CTRL_X = 24   # quit

KEY_NAMES = {
    curses.KEY_UP: ARROW_UP,
    curses.KEY_DOWN: ARROW_DOWN,
    curses.KEY_LEFT: ARROW_LEFT,
    curses.KEY_RIGHT: ARROW_RIGHT,
    curses.KEY_ENTER: ENTER,
    10: ENTER,
    13: ENTER,
    27: ESCAPE,
    curses.KEY_DC: DELETE,
    curses.KEY_BACKSPACE: BACKSPACE,
    127: BACKSPACE,
    8: BACKSPACE,
}


def translate_key(key: int) -> Optional[KeyPress]:
    """Map a curses key code onto the grid keyboard surface"""
    if key in KEY_NAMES:
        return KeyPress(KEY_NAMES[key])
    if 32 <= key <= 126:
        return KeyPress(chr(key))
    return None


def parse_filter_date(text: str) -> Optional[date]:
    """DD-MM-YYYY like the grid, or ISO YYYY-MM-DD from date pickers"""
    parsed = parse_date(text)
    if parsed is not None:
        return parsed
    try:
        return date.fromisoformat(text.strip())
    except ValueError:
        return None


class ImportWorker:
    """Reads import files off the UI loop and hands back one event per file"""

    def __init__(self):
        self.results: "queue.Queue" = queue.Queue()

    def read(self, file_path: str):
        try:
            payload = read_import_payload(file_path)
            return ImportLoaded(detect_format(file_path), payload)
        except (OSError, UnicodeDecodeError, ParseFailure) as e:
            return ImportFailed(f"Failed to load {file_path}: {e}")

    def start(self, file_path: str):
        def import_worker():
            self.results.put(self.read(file_path))

        worker_thread = threading.Thread(target=import_worker, daemon=True)
        worker_thread.start()

    def drain(self) -> List[object]:
        events = []
        while True:
            try:
                events.append(self.results.get_nowait())
            except queue.Empty:
                return events


class GridEditor:
    """Spreadsheet-like work-item editor with curses interface"""

    def __init__(self, rows=SAMPLE_ROWS):
        self.state = initial_state(rows)
        self.mode = 'GRID'  # GRID, COMMAND, SEARCH
        self.command_buffer = ""
        self.search_before = ""
        self.status_message = "Ready"
        self.blocking_message: Optional[str] = None
        self.worker = ImportWorker()
        self.stdscr = None

        # Display settings
        self.scroll_row = 0
        self.scroll_col = 0
        self.visible_rows = 20
        self.cell_layout: List[Tuple[int, int, int, int, str]] = []

    # ---------- event plumbing ----------

    def dispatch(self, event):
        transition = reduce(self.state, event)
        self.state = transition.state
        for effect in transition.effects:
            self.apply_effect(effect)

    def apply_effect(self, effect):
        if isinstance(effect, ReadFile):
            self.worker.start(effect.path)
            self.status_message = f"Loading {effect.path}..."
        elif isinstance(effect, Notice):
            if effect.blocking:
                self.blocking_message = effect.message
            self.status_message = effect.message
        elif isinstance(effect, EditingStarted):
            self.status_message = "-- EDIT --"
        elif isinstance(effect, EditingEnded):
            self.status_message = "Saved" if effect.committed else "Edit cancelled"
        elif isinstance(effect, SelectionChanged):
            self.adjust_scroll()

    def poll_imports(self):
        for event in self.worker.drain():
            self.dispatch(event)

    # ---------- navigation helpers ----------

    def adjust_scroll(self):
        """Keep the selected row inside the viewport"""
        selection = self.state.selection
        if selection is None:
            self.scroll_row = 0
            return
        number = grid_address(self.state).row_number(selection.row_id)
        if number is None:
            return
        index = number - 1
        if index < self.scroll_row:
            self.scroll_row = index
        elif index >= self.scroll_row + self.visible_rows:
            self.scroll_row = index - self.visible_rows + 1

        if selection.column_index < self.scroll_col:
            self.scroll_col = selection.column_index

    def select_first_cell(self):
        address = grid_address(self.state)
        position = address.position_at(1, 0)
        self.dispatch(PointerSelect(position.row_id, position.column_key))

    # ---------- key handling ----------

    def handle_grid_key(self, key: int) -> bool:
        editing = self.state.mode == EDITING

        if not editing:
            if key == CTRL_X:
                return False
            elif key == CTRL_O:
                self.enter_command_mode()
                return True
            elif key == CTRL_F:
                self.enter_search_mode()
                return True
            elif key == CTRL_N:
                self.dispatch(NewRow())
                self.status_message = f"Added row {self.state.store.max_id()}"
                return True
            elif key == CTRL_T:
                self.dispatch(ToggleHiddenFields())
                return True
            elif key == CTRL_E:
                if self.state.selection is not None:
                    self.dispatch(ToggleSort(self.state.selection.column_key))
                    self.status_message = self.sort_message()
                return True

        press = translate_key(key)
        if press is None:
            return True

        if self.state.mode == IDLE and press.key in ARROW_DELTAS:
            self.select_first_cell()
            return True

        self.dispatch(press)
        return True

    def enter_command_mode(self):
        if self.state.mode == EDITING:
            self.dispatch(Blur())
        self.mode = 'COMMAND'
        self.command_buffer = ""
        self.status_message = ":"

    def enter_search_mode(self):
        self.mode = 'SEARCH'
        self.search_before = self.state.search
        self.command_buffer = self.state.search
        self.status_message = "/" + self.command_buffer

    def handle_command_mode(self, key: int) -> bool:
        """Command line key presses"""
        if key == 27:  # ESC
            self.mode = 'GRID'
            self.command_buffer = ""
            self.status_message = "Ready"
        elif key in (10, 13, curses.KEY_ENTER):
            result = self.execute_command(self.command_buffer)
            self.mode = 'GRID'
            self.command_buffer = ""
            return result
        elif key in (curses.KEY_BACKSPACE, 127, 8):
            self.command_buffer = self.command_buffer[:-1]
            self.status_message = ":" + self.command_buffer
        elif 32 <= key <= 126:
            self.command_buffer += chr(key)
            self.status_message = ":" + self.command_buffer
        return True

    def handle_search_mode(self, key: int) -> bool:
        """Live search; the view is recomputed on every keystroke"""
        if key == 27:  # ESC
            self.dispatch(SetSearch(self.search_before))
            self.mode = 'GRID'
            self.status_message = "Search cancelled"
            return True
        elif key in (10, 13, curses.KEY_ENTER):
            self.mode = 'GRID'
            self.status_message = f"{len(visible_view(self.state))} matching rows"
            return True
        elif key in (curses.KEY_BACKSPACE, 127, 8):
            self.command_buffer = self.command_buffer[:-1]
        elif 32 <= key <= 126:
            self.command_buffer += chr(key)
        else:
            return True

        self.dispatch(SetSearch(self.command_buffer))
        self.status_message = "/" + self.command_buffer
        return True

    def handle_mouse(self):
        try:
            _, mx, my, _, bstate = curses.getmouse()
        except curses.error:
            return
        for y, x0, x1, row_id, column_key in self.cell_layout:
            if y == my and x0 <= mx < x1:
                if bstate & curses.BUTTON1_DOUBLE_CLICKED:
                    self.dispatch(PointerEdit(row_id, column_key))
                elif bstate & curses.BUTTON1_CLICKED:
                    editing = self.state.editing
                    if editing is not None and (editing.position.row_id, editing.position.column_key) != (row_id, column_key):
                        # Clicking elsewhere blurs the editor, which saves
                        self.dispatch(Blur())
                    self.dispatch(PointerSelect(row_id, column_key))
                return

    # ---------- commands ----------

    def sort_message(self) -> str:
        directive = self.state.sort
        if directive is None:
            return "Unsorted"
        direction = "ascending" if directive.direction == ASCENDING else "descending"
        return f"Sorted by {directive.column_key} ({direction})"

    def export_rows(self, file_path: str):
        rows = self.state.store.get_all()
        try:
            metrics = write_export(rows, file_path)
        except (OSError, ValueError) as e:
            logger.error("Export to %s failed: %s", file_path, e)
            self.status_message = f"Export failed: {e}"
            return

        message = f"Exported {metrics['rows']} rows to {file_path} in {metrics['save_time']:.2f}s"
        if 'compression_ratio' in metrics:
            message += f" ({metrics['compression_ratio']:.1f}x smaller)"
        self.status_message = message

    def execute_command(self, command: str) -> bool:
        """Execute a command line; returns False to quit"""
        cmd = command.strip()
        name, _, arg = cmd.partition(' ')
        arg = arg.strip()

        if name in ('q', 'quit'):
            return False
        elif name in ('w', 'write', 'export'):
            if arg:
                self.export_rows(arg)
            else:
                self.status_message = "Usage: :w file.json|file.csv|file.xlsx|file.json.zst"
        elif name in ('e', 'edit', 'import'):
            if arg:
                self.dispatch(ImportRequested(arg))
            else:
                self.status_message = "Usage: :e file.json|file.csv|file.xlsx|file.json.zst"
        elif name == 'sort':
            if arg:
                self.dispatch(ToggleSort(arg))
                if self.state.sort is not None and self.state.sort.column_key == arg:
                    self.status_message = self.sort_message()
            else:
                self.status_message = "Usage: :sort column_key"
        elif name in ('find', 'search'):
            self.dispatch(SetSearch(arg))
            self.status_message = f"{len(visible_view(self.state))} matching rows"
        elif name == 'filter':
            field, _, value = arg.partition(' ')
            if field in INCLUSION_FIELDS and value:
                self.dispatch(ToggleFilter(field, value.strip()))
                active = sorted(getattr(self.state.criteria, field))
                self.status_message = f"{field}: {', '.join(active) or 'any'}"
            else:
                self.status_message = f"Usage: :filter {{{'|'.join(INCLUSION_FIELDS)}}} value"
        elif name == 'options':
            if arg in INCLUSION_FIELDS:
                values = distinct_values(self.state.store.get_all(), arg)
                self.status_message = f"{arg}: {', '.join(values)}"
            else:
                self.status_message = f"Usage: :options {{{'|'.join(INCLUSION_FIELDS)}}}"
        elif name == 'dates':
            parts = arg.split()
            if not parts:
                self.dispatch(SetDateRange(None, None))
                self.status_message = "Date range cleared"
            elif len(parts) == 2:
                start, end = (parse_filter_date(p) for p in parts)
                if start is None or end is None:
                    self.status_message = "Dates must be DD-MM-YYYY"
                else:
                    self.dispatch(SetDateRange(start, end))
                    self.status_message = f"{len(visible_view(self.state))} rows submitted in range"
            else:
                self.status_message = "Usage: :dates start end"
        elif name == 'clear':
            self.dispatch(ClearFilters())
            self.dispatch(SetSearch(''))
            self.status_message = "Filters cleared"
        elif name in ('hide', 'show'):
            if arg:
                self.dispatch(SetColumnVisible(arg, name == 'show'))
            else:
                self.status_message = f"Usage: :{name} column_key"
        elif name == 'fields':
            self.dispatch(ToggleHiddenFields())
        elif name == 'new':
            self.dispatch(NewRow())
            self.status_message = f"Added row {self.state.store.max_id()}"
        elif name in ('help', 'h'):
            self.show_help()
        else:
            self.status_message = f"Unknown command: {cmd}"
        return True

    # ---------- drawing ----------

    def show_help(self):
        help_text = """
WORKGRID - HELP
===============

GRID:
  Navigate:     arrow keys (stops at the grid edges)
  Edit:         Enter or double-click (current value), any character (replace),
                Delete/Backspace (start empty)
  While editing: Enter saves, Esc cancels; Status/Priority cycle by first letter
  Sort:         Ctrl+E (selected column; again to reverse)
  Search:       Ctrl+F
  New row:      Ctrl+N
  Hide fields:  Ctrl+T
  Command line: Ctrl+O
  Quit:         Ctrl+X

COMMANDS:
  :e file       import (.json/.json.zst replace, .csv/.xlsx append)
  :w file       export (.json .csv .xlsx .json.zst)
  :sort key     toggle sort on a column
  :find text    search every field
  :filter status|priority|submitter|assigned value   toggle a filter value
  :options field        list values present in a column
  :dates 01-01-2025 31-01-2025   submitted date range
  :clear        drop all filters and search
  :hide key / :show key / :fields
  :new          add a row
  :q            quit
"""
        if self.stdscr is None:
            self.status_message = "F1: help"
            return
        self.show_scrollable_text("Help", help_text)

    def show_scrollable_text(self, title: str, text: str):
        """Show scrollable text in a modal interface"""
        lines = text.strip().split('\n')
        scroll_pos = 0

        while True:
            height, width = self.stdscr.getmaxyx()
            display_height = height - 4
            self.stdscr.clear()

            title_text = f"=== {title} ==="
            try:
                self.stdscr.addstr(0, max(0, (width - len(title_text)) // 2), title_text, curses.A_BOLD)
            except curses.error:
                pass

            for i in range(display_height):
                line_idx = scroll_pos + i
                if line_idx < len(lines):
                    try:
                        self.stdscr.addstr(1 + i, 1, lines[line_idx][:width - 2])
                    except curses.error:
                        pass

            try:
                self.stdscr.addstr(height - 1, 1, "Up/Down:scroll q/Esc/Enter:close"[:width - 2], curses.A_REVERSE)
            except curses.error:
                pass
            self.stdscr.refresh()

            key = self.stdscr.getch()
            if key in (ord('q'), 27, 10, 13):
                break
            elif key == curses.KEY_DOWN and scroll_pos + display_height < len(lines):
                scroll_pos += 1
            elif key == curses.KEY_UP and scroll_pos > 0:
                scroll_pos -= 1

        self.status_message = "Help closed"

    def layout_columns(self, width: int) -> List[Tuple[int, ColumnDescriptor]]:
        """Visible columns (index, descriptor) that fit from scroll_col onwards"""
        columns = visible_columns(self.state.columns)
        selection = self.state.selection
        if selection is not None:
            # Scroll right until the selected column fits
            while True:
                used = ROW_NUMBER_WIDTH
                fits = False
                for index in range(self.scroll_col, len(columns)):
                    used += COLUMN_WIDTHS.get(columns[index].key, 12)
                    if used > width:
                        break
                    if index == selection.column_index:
                        fits = True
                if fits or self.scroll_col >= selection.column_index:
                    break
                self.scroll_col += 1

        shown = []
        used = ROW_NUMBER_WIDTH
        for index in range(self.scroll_col, len(columns)):
            col_width = COLUMN_WIDTHS.get(columns[index].key, 12)
            if used + col_width > width and shown:
                break
            shown.append((index, columns[index]))
            used += col_width
        return shown

    def cell_display(self, row_id: int, column: ColumnDescriptor, virtual: bool) -> str:
        editing = self.state.editing
        if editing is not None and editing.position.row_id == row_id and editing.position.column_key == column.key:
            if column.is_enumerated:
                return f"<{editing.buffer}>"
            return editing.buffer + "_"
        if virtual:
            return str(row_id) if column.key == 'id' else ""
        row = self.state.store.get(row_id)
        return cell_text(row, column.key) if row is not None else ""

    def draw_screen(self, stdscr):
        height, width = stdscr.getmaxyx()
        stdscr.erase()
        self.visible_rows = max(1, height - 7)

        state = self.state
        view = visible_view(state)
        address = grid_address(state)
        shown = self.layout_columns(width)
        selection = state.selection

        # Header line
        header_text = f"{APP_TITLE} | Rows: {len(state.store)} | Mode: {state.mode}"
        if selection is not None:
            header_text += f" | Pos: {selection.column_key}@{address.row_number(selection.row_id) or '-'}"
        if state.search:
            header_text += f" | Search: {state.search}"
        if not state.criteria.is_empty():
            header_text += " | [filtered]"
        if state.import_pending:
            header_text += " | [importing]"
        try:
            stdscr.addstr(0, 0, header_text[:width - 1])
        except curses.error:
            pass

        # Edit bar
        edit_bar = ""
        if selection is not None:
            column = next(c for c in state.columns if c.key == selection.column_key)
            if state.editing is not None:
                edit_bar = f"{column.label}: {state.editing.buffer}"
                if column.is_enumerated:
                    edit_bar += f"   [{' | '.join(column.options)}]"
            else:
                row = state.store.get(selection.row_id)
                edit_bar = f"{column.label}: {cell_text(row, column.key) if row else ''}"
        try:
            attr = curses.A_REVERSE if state.editing is not None else curses.A_NORMAL
            stdscr.addstr(1, 0, edit_bar[:width - 1], attr)
        except curses.error:
            pass

        # Column headers with sort indicators
        x_offset = ROW_NUMBER_WIDTH
        for index, column in shown:
            col_width = COLUMN_WIDTHS.get(column.key, 12)
            label = column.label
            if state.sort is not None and state.sort.column_key == column.key:
                label += " ^" if state.sort.direction == ASCENDING else " v"
            attr = curses.A_BOLD
            if selection is not None and selection.column_index == index:
                attr |= curses.A_REVERSE
            try:
                stdscr.addstr(2, x_offset, f"{label[:col_width - 1]:<{col_width}}"[:width - x_offset - 1], attr)
            except curses.error:
                pass
            x_offset += col_width

        # Data rows then virtual rows
        self.cell_layout = []
        for i in range(self.visible_rows):
            number = self.scroll_row + i + 1
            if number > address.max_row:
                break
            screen_row = 3 + i
            virtual = address.is_virtual(number)
            row_id = address.row_id_at(number)
            is_current_row = selection is not None and selection.row_id == row_id

            try:
                stdscr.addstr(screen_row, 0, f"{number:>5} ", curses.A_BOLD if is_current_row else curses.A_DIM)
            except curses.error:
                pass

            x_offset = ROW_NUMBER_WIDTH
            for index, column in shown:
                col_width = COLUMN_WIDTHS.get(column.key, 12)
                text = self.cell_display(row_id, column, virtual).replace('\n', ' ')
                if len(text) > col_width - 1:
                    text = text[:col_width - 2] + "~"
                cell_text_out = f"{text:<{col_width}}"

                attr = curses.A_NORMAL
                if is_current_row and selection.column_key == column.key:
                    attr = curses.A_REVERSE | curses.A_BOLD
                    if state.editing is not None:
                        attr = curses.A_UNDERLINE | curses.A_BOLD
                elif virtual:
                    attr = curses.A_DIM

                if x_offset < width - 1:
                    try:
                        stdscr.addstr(screen_row, x_offset, cell_text_out[:width - x_offset - 1], attr)
                    except curses.error:
                        pass
                self.cell_layout.append((screen_row, x_offset, x_offset + col_width, row_id, column.key))
                x_offset += col_width

        # Footer counts, help and status
        footer = f"{len(view)} rows   {len(visible_columns(state.columns))} columns"
        if state.mode == EDITING:
            help_text = "Enter:save Esc:cancel"
        elif self.mode == 'COMMAND':
            help_text = "Enter:execute Esc:cancel (e:import w:export sort find filter dates clear q)"
        elif self.mode == 'SEARCH':
            help_text = "Type to search Enter:done Esc:cancel"
        else:
            help_text = "Arrows:move Enter:edit ^E:sort ^F:search ^N:new ^T:fields ^O:command ^X:quit F1:help"
        for y, text, attr in ((height - 3, footer, curses.A_NORMAL),
                              (height - 2, help_text, curses.A_DIM),
                              (height - 1, self.blocking_message or self.status_message,
                               curses.A_REVERSE if self.blocking_message else curses.A_NORMAL)):
            try:
                stdscr.addstr(y, 0, text[:width - 1], attr)
            except curses.error:
                pass

        stdscr.refresh()

    # ---------- main loop ----------

    def run(self, stdscr, file_path: str = None):
        """Main run loop"""
        self.stdscr = stdscr
        curses.curs_set(0)
        stdscr.timeout(INPUT_TIMEOUT_MS)
        stdscr.keypad(True)
        curses.mousemask(curses.BUTTON1_CLICKED | curses.BUTTON1_DOUBLE_CLICKED)

        if file_path:
            self.dispatch(ImportRequested(file_path))
        else:
            self.status_message = f"{APP_TITLE} - F1 for help, Ctrl+O then :e <file> to import"

        try:
            while True:
                self.poll_imports()
                self.draw_screen(stdscr)

                key = stdscr.getch()
                if key == -1:  # Timeout
                    continue

                # Blocking notices swallow one key press
                if self.blocking_message:
                    self.blocking_message = None
                    continue

                if key == curses.KEY_F1:
                    self.show_help()
                    continue
                if key == curses.KEY_MOUSE:
                    if self.mode == 'GRID':
                        self.handle_mouse()
                    continue

                continue_running = True
                if self.mode == 'GRID':
                    continue_running = self.handle_grid_key(key)
                elif self.mode == 'COMMAND':
                    continue_running = self.handle_command_mode(key)
                elif self.mode == 'SEARCH':
                    continue_running = self.handle_search_mode(key)

                if not continue_running:
                    break

        except KeyboardInterrupt:
            pass


def configure_logging():
    """Log to a file; stderr belongs to curses"""
    log_file = os.environ.get(LOG_ENV, DEFAULT_LOG_FILE)
    logging.basicConfig(
        filename=log_file,
        level=logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def configure_locale():
    """Collate text sorts by the user's locale instead of code points"""
    try:
        locale.setlocale(locale.LC_COLLATE, '')
    except locale.Error as e:
        logger.warning("Locale collation unavailable, sorting by code point: %s", e)


def main():
    """Main entry point"""
    configure_logging()
    configure_locale()
    file_path = sys.argv[1] if len(sys.argv) > 1 else None

    editor = GridEditor()
    started = time.time()
    try:
        curses.wrapper(editor.run, file_path)
    except Exception as e:
        logger.exception("Editor crashed")
        print(f"Error: {e}")
        sys.exit(1)
    logger.info("Session closed after %.0fs with %d rows", time.time() - started, len(editor.state.store))


if __name__ == "__main__":
    main()

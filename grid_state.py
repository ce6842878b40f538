"""
Selection & edit state machine and the application reducer

All grid state lives in one immutable GridState value. reduce() maps a state
and one discrete user event to the next state plus a tuple of effects (focus
changes, notices, file reads) for the front end to carry out.

Modes:
    IDLE      no cell addressed
    SELECTED  one cell addressed, not being edited
    EDITING   one cell addressed with a pending edit buffer
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Callable, Dict, Optional, Tuple, Union

from grid_address import CellPosition, GridAddress, column_index, visible_columns
from grid_codec import ParseFailure, decode_import
from grid_filter import INCLUSION_FIELDS, FilterCriteria, filter_rows
from grid_schema import COLUMNS, ColumnDescriptor, cell_text, column_for, default_row, new_row
from grid_sort import SortDirective, sort_rows, toggle_sort
from grid_store import RowStore

logger = logging.getLogger(__name__)

IDLE = 'IDLE'
SELECTED = 'SELECTED'
EDITING = 'EDITING'

ARROW_UP = 'ArrowUp'
ARROW_DOWN = 'ArrowDown'
ARROW_LEFT = 'ArrowLeft'
ARROW_RIGHT = 'ArrowRight'
ENTER = 'Enter'
ESCAPE = 'Escape'
DELETE = 'Delete'
BACKSPACE = 'Backspace'

ARROW_DELTAS = {
    ARROW_UP: (-1, 0),
    ARROW_DOWN: (1, 0),
    ARROW_LEFT: (0, -1),
    ARROW_RIGHT: (0, 1),
}

DEFAULT_HIDDEN_FIELDS = ('url', 'submitted')


# ---------- state ----------

@dataclass(frozen=True)
class EditSession:
    position: CellPosition
    buffer: str


@dataclass(frozen=True)
class GridState:
    store: RowStore = field(default_factory=RowStore)
    columns: Tuple[ColumnDescriptor, ...] = COLUMNS
    selection: Optional[CellPosition] = None
    editing: Optional[EditSession] = None
    sort: Optional[SortDirective] = None
    criteria: FilterCriteria = FilterCriteria()
    search: str = ''
    import_pending: bool = False

    @property
    def mode(self) -> str:
        if self.editing is not None:
            return EDITING
        if self.selection is not None:
            return SELECTED
        return IDLE


# ---------- events ----------

@dataclass(frozen=True)
class PointerSelect:
    row_id: int
    column_key: str


@dataclass(frozen=True)
class PointerEdit:
    """Double-click on a cell"""
    row_id: int
    column_key: str


@dataclass(frozen=True)
class KeyPress:
    key: str
    ctrl: bool = False
    alt: bool = False
    meta: bool = False


@dataclass(frozen=True)
class EditText:
    """Replace the whole edit buffer (text input change)"""
    text: str


@dataclass(frozen=True)
class ChooseOption:
    value: str


@dataclass(frozen=True)
class Blur:
    pass


@dataclass(frozen=True)
class ToggleSort:
    column_key: str


@dataclass(frozen=True)
class SetSearch:
    text: str


@dataclass(frozen=True)
class ToggleFilter:
    field: str
    value: str


@dataclass(frozen=True)
class SetDateRange:
    start: Optional[date]
    end: Optional[date]


@dataclass(frozen=True)
class SetFilters:
    criteria: FilterCriteria


@dataclass(frozen=True)
class ClearFilters:
    pass


@dataclass(frozen=True)
class SetColumnVisible:
    column_key: str
    visible: bool


@dataclass(frozen=True)
class ToggleHiddenFields:
    pass


@dataclass(frozen=True)
class NewRow:
    today: Optional[date] = None


@dataclass(frozen=True)
class ImportRequested:
    path: str


@dataclass(frozen=True)
class ImportLoaded:
    fmt: str
    payload: Union[str, bytes]


@dataclass(frozen=True)
class ImportFailed:
    message: str


# ---------- effects ----------

@dataclass(frozen=True)
class SelectionChanged:
    position: Optional[CellPosition]


@dataclass(frozen=True)
class EditingStarted:
    position: CellPosition
    buffer: str


@dataclass(frozen=True)
class EditingEnded:
    position: CellPosition
    committed: bool


@dataclass(frozen=True)
class Notice:
    message: str
    blocking: bool = False


@dataclass(frozen=True)
class ReadFile:
    path: str


@dataclass(frozen=True)
class Transition:
    state: GridState
    effects: Tuple[Any, ...] = ()


# ---------- derived views ----------

def visible_view(state: GridState):
    """Rows on screen: store order, narrowed by search and criteria"""
    return filter_rows(state.store.get_all(), state.criteria, state.search)


def grid_address(state: GridState) -> GridAddress:
    return GridAddress(visible_view(state), state.columns, state.store.max_id())


def current_value(state: GridState, position: CellPosition) -> str:
    row = state.store.get(position.row_id)
    if row is None:
        # Virtual slot: what the row would hold once materialized
        row = default_row(position.row_id)
    return cell_text(row, position.column_key)


def is_printable(press: KeyPress) -> bool:
    return (len(press.key) == 1 and press.key.isprintable()
            and not (press.ctrl or press.alt or press.meta))


# ---------- edit helpers ----------

def _typeahead(options: Tuple[str, ...], char: str, current: str) -> Optional[str]:
    """Next option starting with char, cycling like a native select"""
    candidates = [o for o in options if o.lower().startswith(char.lower())]
    if not candidates:
        return None
    if current in candidates:
        return candidates[(candidates.index(current) + 1) % len(candidates)]
    return candidates[0]


def _seed_buffer(column: ColumnDescriptor, seed: str, current: str) -> str:
    if not column.is_enumerated:
        return seed
    if seed in column.options:
        return seed
    if len(seed) == 1:
        match = _typeahead(column.options, seed, current)
        if match is not None:
            return match
    return current if current in column.options else column.options[0]


def _cancel_pending(state: GridState, effects: list) -> GridState:
    if state.editing is None:
        return state
    effects.append(EditingEnded(state.editing.position, committed=False))
    return replace(state, editing=None)


def _release_virtual(state: GridState, effects: list) -> GridState:
    """Drop an edit or selection on a virtual slot before rows are appended there"""
    if state.editing is not None and state.store.get(state.editing.position.row_id) is None:
        state = _cancel_pending(state, effects)
    if state.selection is not None and state.store.get(state.selection.row_id) is None:
        effects.append(SelectionChanged(None))
        state = replace(state, selection=None)
    return state


def _start_editing(state: GridState, position: CellPosition, seed: str, effects: list) -> GridState:
    column = column_for(position.column_key, state.columns)
    if not column.editable:
        return state
    buffer = _seed_buffer(column, seed, current_value(state, position))
    state = replace(state, selection=position, editing=EditSession(position, buffer))
    effects.append(EditingStarted(position, buffer))
    return state


def _commit(state: GridState, effects: list) -> GridState:
    session = state.editing
    if session is None:
        return state
    position = session.position
    column = column_for(position.column_key, state.columns)

    if column.is_enumerated and session.buffer not in column.options:
        effects.append(Notice(f"'{session.buffer}' is not a valid {column.label}"))
        effects.append(EditingEnded(position, committed=False))
        return replace(state, editing=None)

    store = state.store.upsert_field(position.row_id, position.column_key, session.buffer)
    effects.append(EditingEnded(position, committed=True))
    return replace(state, store=store, editing=None, selection=position)


def _known_column(state: GridState, key: str) -> bool:
    return any(c.key == key for c in state.columns)


def _position_for(state: GridState, row_id: int, column_key: str) -> Optional[CellPosition]:
    """Validate a pointer target against the current view"""
    index = column_index(state.columns, column_key)
    if index is None:
        return None
    if grid_address(state).row_number(row_id) is None:
        return None
    return CellPosition(row_id, column_key, index)


# ---------- handlers ----------

def _on_pointer_select(state: GridState, event: PointerSelect) -> Transition:
    position = _position_for(state, event.row_id, event.column_key)
    if position is None:
        return Transition(state)
    column = column_for(position.column_key, state.columns)
    if not column.editable and column.key != 'id':
        return Transition(state)
    if state.editing is not None and state.editing.position == position:
        return Transition(state)

    effects: list = []
    state = _cancel_pending(state, effects)
    state = replace(state, selection=position)
    effects.append(SelectionChanged(position))
    return Transition(state, tuple(effects))


def _on_pointer_edit(state: GridState, event: PointerEdit) -> Transition:
    position = _position_for(state, event.row_id, event.column_key)
    if position is None or not column_for(position.column_key, state.columns).editable:
        return Transition(state)

    effects: list = []
    state = _cancel_pending(state, effects)
    state = _start_editing(state, position, current_value(state, position), effects)
    return Transition(state, tuple(effects))


def _on_key_editing(state: GridState, press: KeyPress) -> Transition:
    effects: list = []
    session = state.editing
    column = column_for(session.position.column_key, state.columns)

    if press.key == ENTER:
        state = _commit(state, effects)
    elif press.key == ESCAPE:
        state = _cancel_pending(state, effects)
    elif press.key == BACKSPACE and not column.is_enumerated:
        state = replace(state, editing=replace(session, buffer=session.buffer[:-1]))
    elif is_printable(press):
        if column.is_enumerated:
            match = _typeahead(column.options, press.key, session.buffer)
            if match is not None:
                state = replace(state, editing=replace(session, buffer=match))
        else:
            state = replace(state, editing=replace(session, buffer=session.buffer + press.key))
    # Navigation keys are captured by the editor while editing
    return Transition(state, tuple(effects))


def _on_key_selected(state: GridState, press: KeyPress) -> Transition:
    effects: list = []
    position = state.selection

    if press.key in ARROW_DELTAS:
        delta_row, delta_col = ARROW_DELTAS[press.key]
        moved = grid_address(state).move(position, delta_row, delta_col)
        if moved != position:
            state = replace(state, selection=moved)
            effects.append(SelectionChanged(moved))
    elif press.key == ENTER:
        state = _start_editing(state, position, current_value(state, position), effects)
    elif press.key in (DELETE, BACKSPACE):
        state = _start_editing(state, position, '', effects)
    elif is_printable(press):
        state = _start_editing(state, position, press.key, effects)
    return Transition(state, tuple(effects))


def _on_key(state: GridState, press: KeyPress) -> Transition:
    if state.editing is not None:
        return _on_key_editing(state, press)
    if state.selection is not None:
        return _on_key_selected(state, press)
    return Transition(state)


def _on_edit_text(state: GridState, event: EditText) -> Transition:
    session = state.editing
    if session is None:
        return Transition(state)
    column = column_for(session.position.column_key, state.columns)
    if column.is_enumerated and event.text not in column.options:
        return Transition(state)
    return Transition(replace(state, editing=replace(session, buffer=event.text)))


def _on_choose_option(state: GridState, event: ChooseOption) -> Transition:
    session = state.editing
    if session is None:
        return Transition(state)
    column = column_for(session.position.column_key, state.columns)
    if event.value not in column.options:
        return Transition(state)
    return Transition(replace(state, editing=replace(session, buffer=event.value)))


def _on_blur(state: GridState, event: Blur) -> Transition:
    effects: list = []
    state = _commit(state, effects)
    return Transition(state, tuple(effects))


def _on_toggle_sort(state: GridState, event: ToggleSort) -> Transition:
    if not _known_column(state, event.column_key):
        return Transition(state, (Notice(f"Unknown column {event.column_key}"),))
    effects: list = []
    # Header click blurs the editor first
    state = _commit(state, effects)
    directive = toggle_sort(state.sort, event.column_key)
    store = state.store.reorder(sort_rows(state.store.get_all(), directive))
    return Transition(replace(state, store=store, sort=directive), tuple(effects))


def _on_set_search(state: GridState, event: SetSearch) -> Transition:
    return Transition(replace(state, search=event.text))


def _on_toggle_filter(state: GridState, event: ToggleFilter) -> Transition:
    if event.field not in INCLUSION_FIELDS:
        return Transition(state, (Notice(f"Cannot filter on {event.field}"),))
    return Transition(replace(state, criteria=state.criteria.toggle(event.field, event.value)))


def _on_set_date_range(state: GridState, event: SetDateRange) -> Transition:
    return Transition(replace(state, criteria=state.criteria.with_date_range(event.start, event.end)))


def _on_set_filters(state: GridState, event: SetFilters) -> Transition:
    return Transition(replace(state, criteria=event.criteria))


def _on_clear_filters(state: GridState, event: ClearFilters) -> Transition:
    return Transition(replace(state, criteria=state.criteria.cleared()))


def _apply_visibility(state: GridState, columns: Tuple[ColumnDescriptor, ...]) -> Transition:
    if columns == state.columns:
        return Transition(state)
    if not visible_columns(columns):
        return Transition(state, (Notice("At least one column must stay visible"),))

    effects: list = []
    state = _cancel_pending(state, effects)
    # Column indexes are stale once visibility changes
    if state.selection is not None:
        effects.append(SelectionChanged(None))
    sort = state.sort
    if sort is not None and column_index(columns, sort.column_key) is None:
        sort = None
    state = replace(state, columns=columns, selection=None, sort=sort)
    return Transition(state, tuple(effects))


def _on_set_column_visible(state: GridState, event: SetColumnVisible) -> Transition:
    if not _known_column(state, event.column_key):
        return Transition(state, (Notice(f"Unknown column {event.column_key}"),))
    columns = tuple(
        replace(c, visible=event.visible) if c.key == event.column_key else c
        for c in state.columns
    )
    return _apply_visibility(state, columns)


def _on_toggle_hidden_fields(state: GridState, event: ToggleHiddenFields) -> Transition:
    if any(not c.visible for c in state.columns):
        columns = tuple(replace(c, visible=True) for c in state.columns)
    else:
        columns = tuple(
            replace(c, visible=c.key not in DEFAULT_HIDDEN_FIELDS) for c in state.columns
        )
    return _apply_visibility(state, columns)


def _on_new_row(state: GridState, event: NewRow) -> Transition:
    effects: list = []
    state = _release_virtual(state, effects)
    row = new_row(state.store.next_id(), event.today)
    return Transition(replace(state, store=state.store.append(row)), tuple(effects))


def _on_import_requested(state: GridState, event: ImportRequested) -> Transition:
    if state.import_pending:
        return Transition(state, (Notice("An import is already in progress"),))
    return Transition(replace(state, import_pending=True), (ReadFile(event.path),))


def _on_import_loaded(state: GridState, event: ImportLoaded) -> Transition:
    try:
        outcome = decode_import(state.store, event.fmt, event.payload)
    except ParseFailure as e:
        logger.warning("Import rejected: %s", e)
        state = replace(state, import_pending=False)
        return Transition(state, (Notice(f"Error parsing file: {e}", blocking=True),))

    effects: list = []
    if outcome.mode == 'append':
        # Appended ids take over the virtual slots
        state = _release_virtual(state, effects)
    # Store order no longer reflects a sort directive
    state = replace(state, store=outcome.store, sort=None, import_pending=False)
    if outcome.mode == 'replace':
        state = _cancel_pending(state, effects)
        if state.selection is not None:
            effects.append(SelectionChanged(None))
        state = replace(state, selection=None)

    logger.info("Imported %d rows (%s)", outcome.count, outcome.mode)
    verb = "Loaded" if outcome.mode == 'replace' else "Appended"
    effects.append(Notice(f"{verb} {outcome.count} rows"))
    return Transition(state, tuple(effects))


def _on_import_failed(state: GridState, event: ImportFailed) -> Transition:
    logger.warning("Import failed: %s", event.message)
    state = replace(state, import_pending=False)
    return Transition(state, (Notice(event.message, blocking=True),))


_HANDLERS: Dict[type, Callable[[GridState, Any], Transition]] = {
    PointerSelect: _on_pointer_select,
    PointerEdit: _on_pointer_edit,
    KeyPress: _on_key,
    EditText: _on_edit_text,
    ChooseOption: _on_choose_option,
    Blur: _on_blur,
    ToggleSort: _on_toggle_sort,
    SetSearch: _on_set_search,
    ToggleFilter: _on_toggle_filter,
    SetDateRange: _on_set_date_range,
    SetFilters: _on_set_filters,
    ClearFilters: _on_clear_filters,
    SetColumnVisible: _on_set_column_visible,
    ToggleHiddenFields: _on_toggle_hidden_fields,
    NewRow: _on_new_row,
    ImportRequested: _on_import_requested,
    ImportLoaded: _on_import_loaded,
    ImportFailed: _on_import_failed,
}


def reduce(state: GridState, event) -> Transition:
    """Apply one user event; unknown event types are a programming error"""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"unhandled event {type(event).__name__}")
    return handler(state, event)


def initial_state(rows=()) -> GridState:
    return GridState(store=RowStore(rows))

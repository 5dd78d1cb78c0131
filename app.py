from flask import Flask, render_template_string, request, redirect, url_for, session, jsonify
from functools import wraps
from markupsafe import Markup, escape
import os
import re
import secrets
import logging
from datetime import timedelta

from database import Database
from session_store import SessionStore
from kanban_state import KanbanState
from boards import BoardManager
from profiles import ProfileManager
from notifications import FlashNotifier, Notifier
from dragdrop import CardBox, ColumnBox, insertion_index, resolve_drop_column, cards_excluding
from models import COLUMN_TITLES, TaskPriority, TaskStatus, parse_datetime, utcnow
from templates import AUTH_TEMPLATE, PROFILE_TEMPLATE, BOARD_TEMPLATE, NOT_FOUND_TEMPLATE

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = os.environ.get('SECRET_KEY', secrets.token_hex(32))

# Session configuration
app.config['SESSION_PERMANENT'] = False
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=int(os.environ.get('SESSION_LIFETIME_HOURS', '24')))
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

_db = None


# Helper functions
@app.template_filter('linkify')
def linkify(text):
    if not text:
        return ""

    # First escape HTML to prevent injection
    text = str(escape(text))

    # Then linkify emails and URLs on the escaped text
    text = re.sub(
        r'([a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+)',
        r'<a href="mailto:\1">\1</a>', text
    )
    text = re.sub(
        r'(https?://[^\s]+)',
        r'<a href="\1" target="_blank">\1</a>', text
    )
    return Markup(text)


def get_db():
    """Connect on first use so the module imports without a database."""
    global _db
    if _db is None:
        _db = Database()
    return _db


def session_store(notifier=None):
    return SessionStore(get_db(), session, notifier or FlashNotifier())


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if session_store(Notifier()).user is None:
            return redirect(url_for('auth'))
        return f(*args, **kwargs)
    return decorated_function


def api_login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if session_store(Notifier()).user is None:
            return jsonify({"error": "Authentication required"}), 401
        return f(*args, **kwargs)
    return decorated_function


def _form_task_fields():
    """Read the task dialog fields shared by the add and edit forms."""
    return {
        'title': request.form.get('title', '').strip(),
        'description': request.form.get('description', '').strip(),
        'priority': request.form.get('priority', TaskPriority.MEDIUM.value),
        'due_date': parse_datetime(request.form.get('due_date', '').strip()),
        'owner': request.form.get('owner', '').strip() or None,
    }


def _open_board(board_id, notifier):
    """Load an accessible board and its state container for the signed-in user."""
    user = session_store(notifier).user
    board = BoardManager(get_db(), notifier).get_board(board_id, user['id'])
    if board is None:
        return None, None
    state = KanbanState(get_db(), user, board.id, notifier)
    state.fetch_tasks()
    return board, state


# Routes
@app.route('/')
def index():
    if session_store(Notifier()).user is not None:
        return redirect(url_for('my_board'))
    return redirect(url_for('auth'))


@app.route('/auth', methods=['GET', 'POST'])
def auth():
    store = session_store()
    if store.user is not None:
        return redirect(url_for('index'))

    mode = request.args.get('mode', 'signin')
    email = ''
    if request.method == 'POST':
        mode = request.form.get('action', 'signin')
        email = request.form.get('email', '').strip()
        password = request.form.get('password', '')

        if mode == 'signup':
            user = store.sign_up(email, password)
        else:
            user = store.sign_in_with_password(email, password)

        if user:
            session.permanent = True
            return redirect(url_for('index'))

    return render_template_string(AUTH_TEMPLATE,
                                  mode='signup' if mode == 'signup' else 'signin',
                                  email=email,
                                  min_password_length=SessionStore.MIN_PASSWORD_LENGTH)


@app.route('/logout')
def logout():
    session_store().sign_out()
    return redirect(url_for('auth'))


@app.route('/profile')
@login_required
def profile():
    notifier = FlashNotifier()
    user = session_store(notifier).refresh()
    if user is None:
        return redirect(url_for('auth'))

    profile = ProfileManager(get_db(), notifier).fetch_profile(user)
    boards, shared_boards = BoardManager(get_db(), notifier).list_boards(user['id'])

    return render_template_string(PROFILE_TEMPLATE,
                                  user=user,
                                  profile=profile,
                                  boards=boards,
                                  shared_boards=shared_boards)


@app.route('/profile', methods=['POST'])
@login_required
def update_profile():
    notifier = FlashNotifier()
    user = session_store(notifier).user
    ProfileManager(get_db(), notifier).update_profile(
        user,
        request.form.get('username', ''),
        request.form.get('full_name', ''),
        request.form.get('avatar_url', ''),
    )
    return redirect(url_for('profile'))


@app.route('/boards', methods=['POST'])
@login_required
def create_board():
    notifier = FlashNotifier()
    user = session_store(notifier).user
    board = BoardManager(get_db(), notifier).create_board(
        user['id'],
        request.form.get('name', ''),
        request.form.get('description', ''),
    )
    if board is None:
        return redirect(url_for('profile'))
    return redirect(url_for('board', board_id=board.id))


@app.route('/boards/<board_id>/edit', methods=['POST'])
@login_required
def edit_board(board_id):
    notifier = FlashNotifier()
    user = session_store(notifier).user
    manager = BoardManager(get_db(), notifier)
    board = manager.get_board(board_id, user['id'])
    if board is not None:
        manager.update_board(board, request.form.get('name', ''), request.form.get('description', ''))
    return redirect(url_for('profile'))


@app.route('/boards/<board_id>/delete', methods=['POST'])
@login_required
def delete_board(board_id):
    notifier = FlashNotifier()
    user = session_store(notifier).user
    manager = BoardManager(get_db(), notifier)
    board = manager.get_board(board_id, user['id'])
    if board is not None:
        manager.delete_board(board)
    return redirect(url_for('profile'))


@app.route('/my-board')
@login_required
def my_board():
    notifier = FlashNotifier()
    user = session_store(notifier).user
    board = BoardManager(get_db(), notifier).ensure_default_board(user['id'])
    if board is None:
        return redirect(url_for('profile'))
    return redirect(url_for('board', board_id=board.id))


@app.route('/board/<board_id>')
@login_required
def board(board_id):
    notifier = FlashNotifier()
    board, state = _open_board(board_id, notifier)
    if board is None:
        return redirect(url_for('profile'))

    edit_task = None
    edit_id = request.args.get('edit', type=int)
    if edit_id is not None:
        edit_task = state.find_task(edit_id)

    add_status = request.args.get('add')
    if add_status not in {status.value for status in TaskStatus}:
        add_status = None

    members = BoardManager(get_db(), notifier).list_members(board.id) if board.is_owner else []

    return render_template_string(BOARD_TEMPLATE,
                                  user=session_store(notifier).user,
                                  board=board,
                                  columns=state.columns,
                                  members=members,
                                  edit_task=edit_task,
                                  add_status=add_status,
                                  column_titles={status.value: title for status, title in COLUMN_TITLES.items()},
                                  priorities=[priority.value for priority in TaskPriority],
                                  tomorrow=(utcnow() + timedelta(days=1)).strftime('%Y-%m-%d'))


@app.route('/board/<board_id>/tasks', methods=['POST'])
@login_required
def add_task(board_id):
    notifier = FlashNotifier()
    board, state = _open_board(board_id, notifier)
    if board is None:
        return redirect(url_for('profile'))

    fields = _form_task_fields()
    if fields['title']:
        state.add_task(
            fields['title'],
            fields['description'],
            request.form.get('status', TaskStatus.TODO.value),
            fields['priority'],
            fields['due_date'],
            fields['owner'],
        )
    return redirect(url_for('board', board_id=board_id))


@app.route('/board/<board_id>/tasks/<int:task_id>/edit', methods=['POST'])
@login_required
def edit_task(board_id, task_id):
    notifier = FlashNotifier()
    board, state = _open_board(board_id, notifier)
    if board is None:
        return redirect(url_for('profile'))

    fields = _form_task_fields()
    if fields['title']:
        state.update_task_details(
            task_id,
            fields['title'],
            fields['description'],
            fields['priority'],
            fields['due_date'],
            fields['owner'],
        )
    return redirect(url_for('board', board_id=board_id))


@app.route('/board/<board_id>/tasks/<int:task_id>/status', methods=['POST'])
@login_required
def set_task_status(board_id, task_id):
    notifier = FlashNotifier()
    board, state = _open_board(board_id, notifier)
    if board is None:
        return redirect(url_for('profile'))

    state.update_task_status(task_id, request.form.get('status', ''))
    return redirect(url_for('board', board_id=board_id))


@app.route('/board/<board_id>/tasks/<int:task_id>/delete', methods=['POST'])
@login_required
def delete_task(board_id, task_id):
    notifier = FlashNotifier()
    board, state = _open_board(board_id, notifier)
    if board is None:
        return redirect(url_for('profile'))

    state.delete_task(task_id)
    return redirect(url_for('board', board_id=board_id))


@app.route('/board/<board_id>/members', methods=['POST'])
@login_required
def share_board(board_id):
    notifier = FlashNotifier()
    user = session_store(notifier).user
    manager = BoardManager(get_db(), notifier)
    board = manager.get_board(board_id, user['id'])
    if board is None:
        return redirect(url_for('profile'))

    manager.share_board(board, request.form.get('email', ''), request.form.get('role', 'member'))
    return redirect(url_for('board', board_id=board_id))


@app.route('/board/<board_id>/members/<int:member_id>/delete', methods=['POST'])
@login_required
def remove_member(board_id, member_id):
    notifier = FlashNotifier()
    user = session_store(notifier).user
    manager = BoardManager(get_db(), notifier)
    board = manager.get_board(board_id, user['id'])
    if board is None:
        return redirect(url_for('profile'))

    manager.remove_member(board, member_id)
    return redirect(url_for('board', board_id=board_id))


# JSON API used by the board page scripts
@app.route('/api/boards/<board_id>/columns')
@api_login_required
def api_columns(board_id):
    notifier = Notifier()
    board, state = _open_board(board_id, notifier)
    if board is None:
        return jsonify({"error": "Board not found"}), 404
    payload = state.to_dict()
    payload["board"] = board.to_dict()
    return jsonify(payload)


@app.route('/api/boards/<board_id>/tasks/<int:task_id>/move', methods=['POST'])
@api_login_required
def api_move_task(board_id, task_id):
    """
    Drop a card. Body: status (optional when columns are given), index or
    pointer {x, y} with the target column's cards [{id, top, height}], and
    columns [{status, left, right, top, bottom}].
    """
    data = request.get_json(force=True, silent=True) or {}
    pointer = data.get('pointer') or {}

    try:
        status = data.get('status')
        if not status and data.get('columns') and pointer:
            columns = [ColumnBox.from_dict(item) for item in data['columns']]
            status = resolve_drop_column(float(pointer['x']), float(pointer['y']), columns)
        if not status:
            return jsonify({"error": "status is required"}), 400
        status = TaskStatus.parse(status)

        index = data.get('index')
        if index is not None:
            index = int(index)
        elif pointer.get('y') is not None:
            cards = cards_excluding([CardBox.from_dict(item) for item in data.get('cards', [])], task_id)
            index = insertion_index(float(pointer['y']), cards)
    except (KeyError, TypeError, ValueError) as e:
        return jsonify({"error": f"Invalid drop payload: {e}"}), 400

    notifier = Notifier()
    board, state = _open_board(board_id, notifier)
    if board is None:
        return jsonify({"error": "Board not found"}), 404

    if state.find_task(task_id) is None:
        return jsonify({"error": "Task not found"}), 404

    if not state.move_task(task_id, status, index):
        errors = [note.description or note.title for note in notifier.drain()]
        return jsonify({"error": errors[0] if errors else "Error moving task", "columns": state.to_dict()["columns"]}), 500

    payload = state.to_dict()
    payload["moved"] = {"task_id": task_id, "status": status.value, "index": state.column(status).index_of(task_id)}
    return jsonify(payload)


@app.route('/health')
def health():
    try:
        stats = get_db().get_database_stats()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return jsonify({"status": "error", "error": str(e)}), 503
    return jsonify({"status": "ok", "database": stats})


@app.errorhandler(404)
def not_found(error):
    logger.warning(f"404 Error: User attempted to access non-existent route: {request.path}")
    return render_template_string(NOT_FOUND_TEMPLATE), 404


if __name__ == "__main__":
    # Get port from environment variable (for deployment)
    port = int(os.environ.get('PORT', 5000))

    # Run the app
    app.run(debug=True, host='0.0.0.0', port=port)

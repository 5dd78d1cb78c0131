_HEAD = '''
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: system-ui, -apple-system, 'Segoe UI', Roboto, sans-serif;
            background: #f5f5f7;
            color: #1f2937;
            min-height: 100vh;
        }
        a { color: #4f46e5; text-decoration: none; }
        button, .btn {
            background: #4f46e5; color: white; border: none; border-radius: 6px;
            padding: 7px 14px; font-size: 14px; cursor: pointer;
        }
        button.ghost { background: transparent; color: #374151; }
        button.danger { background: #dc2626; }
        input, select, textarea {
            border: 1px solid #d1d5db; border-radius: 6px; padding: 7px 9px;
            font-size: 14px; width: 100%;
        }
        label { font-size: 13px; font-weight: 600; color: #4b5563; }
        .header-bar {
            background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
            color: white; padding: 16px 24px;
            display: flex; justify-content: space-between; align-items: center;
        }
        .header-bar a { color: white; margin-left: 16px; font-weight: 500; }
        .container { max-width: 1200px; margin: 0 auto; padding: 24px 16px; }
        .card { background: white; border-radius: 10px; box-shadow: 0 1px 4px rgba(0,0,0,0.08); padding: 20px; margin-bottom: 20px; }
        .form-grid { display: grid; gap: 10px; }
        .toasts { position: fixed; top: 20px; right: 20px; z-index: 1000; display: grid; gap: 8px; }
        .toast { background: #111827; color: white; padding: 12px 16px; border-radius: 8px; max-width: 340px; box-shadow: 0 4px 12px rgba(0,0,0,0.15); }
        .toast.destructive { background: #dc2626; }
        .toast strong { display: block; }
    </style>
'''

_TOASTS = '''
    <div class="toasts">
    {% with messages = get_flashed_messages(with_categories=true) %}
        {% for category, message in messages %}
        <div class="toast {{ category }}">
            <strong>{{ message.title }}</strong>
            {% if message.description %}<span>{{ message.description }}</span>{% endif %}
        </div>
        {% endfor %}
    {% endwith %}
    </div>
    <script>
        setTimeout(() => document.querySelectorAll('.toast').forEach(t => t.remove()), 4000);
    </script>
'''

_NAV = '''
    <div class="header-bar">
        <a href="{{ url_for('my_board') }}" style="margin:0;font-size:1.4rem;font-weight:700;">KNBN</a>
        <div>
            {% if user %}<span>{{ user.email }}</span>{% endif %}
            <a href="{{ url_for('profile') }}">Profile</a>
            <a href="{{ url_for('logout') }}">Sign out</a>
        </div>
    </div>
'''

AUTH_TEMPLATE = '''
<!DOCTYPE html>
<html lang="en">
<head>
    <title>KNBN - Sign in</title>
''' + _HEAD + '''
    <style>
        body { display: flex; align-items: center; justify-content: center; background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); }
        .auth-container { background: white; border-radius: 20px; padding: 36px; width: 100%; max-width: 420px; box-shadow: 0 15px 35px rgba(0,0,0,0.1); }
        .tabs { display: flex; gap: 8px; margin-bottom: 20px; }
        .tabs a { flex: 1; text-align: center; padding: 8px; border-radius: 6px; background: #eef2ff; }
        .tabs a.active { background: #4f46e5; color: white; }
        h1 { text-align: center; margin-bottom: 20px; }
    </style>
</head>
<body>
''' + _TOASTS + '''
    <div class="auth-container">
        <h1>KNBN</h1>
        <div class="tabs">
            <a href="{{ url_for('auth', mode='signin') }}" class="{{ 'active' if mode == 'signin' }}">Sign In</a>
            <a href="{{ url_for('auth', mode='signup') }}" class="{{ 'active' if mode == 'signup' }}">Sign Up</a>
        </div>
        <form method="post" action="{{ url_for('auth') }}" class="form-grid">
            <input type="hidden" name="action" value="{{ mode }}">
            <label for="email">Email</label>
            <input id="email" type="email" name="email" value="{{ email or '' }}" placeholder="you@example.com" required>
            <label for="password">Password</label>
            <input id="password" type="password" name="password" required minlength="{{ min_password_length }}">
            <button type="submit">{{ 'Create Account' if mode == 'signup' else 'Sign In' }}</button>
        </form>
    </div>
</body>
</html>
'''

PROFILE_TEMPLATE = '''
<!DOCTYPE html>
<html lang="en">
<head>
    <title>KNBN - Profile</title>
''' + _HEAD + '''
    <style>
        .layout { display: grid; grid-template-columns: 1fr 2fr; gap: 20px; }
        .avatar { width: 96px; height: 96px; border-radius: 50%; background: #4f46e5; color: white; display: flex; align-items: center; justify-content: center; font-size: 2rem; margin: 0 auto 12px; overflow: hidden; }
        .avatar img { width: 100%; height: 100%; object-fit: cover; }
        .meta { font-size: 13px; color: #6b7280; text-align: center; margin-bottom: 12px; }
        .board-item { border: 1px solid #e5e7eb; border-radius: 8px; padding: 14px; margin-bottom: 12px; }
        .board-item h3 { margin-bottom: 4px; }
        .board-actions { display: flex; gap: 8px; margin-top: 10px; align-items: center; }
        .empty { text-align: center; color: #6b7280; padding: 24px; background: #f9fafb; border-radius: 8px; }
        @media (max-width: 768px) { .layout { grid-template-columns: 1fr; } }
    </style>
</head>
<body>
''' + _NAV + _TOASTS + '''
    <div class="container layout">
        <div class="card">
            <h2 style="margin-bottom:12px;">User Profile</h2>
            <div class="avatar">
                {% if profile and profile.avatar_url %}<img src="{{ profile.avatar_url }}" alt="avatar">
                {% else %}{{ ((profile.username if profile else '') or user.email)[:1]|upper }}{% endif %}
            </div>
            <div class="meta">
                <div>{{ user.email }}</div>
                <div>Joined: {{ user.created_at or 'N/A' }}</div>
                <div>Last sign in: {{ user.last_sign_in_at or 'N/A' }}</div>
            </div>
            <form method="post" action="{{ url_for('update_profile') }}" class="form-grid">
                <label for="username">Username</label>
                <input id="username" name="username" value="{{ profile.username if profile and profile.username else '' }}">
                <label for="full_name">Full Name</label>
                <input id="full_name" name="full_name" value="{{ profile.full_name if profile and profile.full_name else '' }}">
                <label for="avatar_url">Avatar URL</label>
                <input id="avatar_url" name="avatar_url" value="{{ profile.avatar_url if profile and profile.avatar_url else '' }}">
                <button type="submit">Save Profile</button>
            </form>
            <div class="meta" style="margin-top:12px;">
                Last updated: {{ profile.updated_at.strftime('%Y-%m-%d %H:%M') if profile else 'Never' }}
            </div>
        </div>

        <div>
            <div class="card">
                <h2 style="margin-bottom:12px;">Create Board</h2>
                <form method="post" action="{{ url_for('create_board') }}" class="form-grid">
                    <input name="name" placeholder="Board name" required maxlength="80">
                    <input name="description" placeholder="Description (optional)" maxlength="200">
                    <button type="submit">Create Board</button>
                </form>
            </div>

            <div class="card">
                <h2 style="margin-bottom:12px;">Your Boards</h2>
                {% for board in boards %}
                <div class="board-item">
                    {% if request.args.get('edit_board') == board.id %}
                    <form method="post" action="{{ url_for('edit_board', board_id=board.id) }}" class="form-grid">
                        <label>Board Name</label>
                        <input name="name" value="{{ board.name }}" required maxlength="80" autofocus>
                        <label>Description (optional)</label>
                        <input name="description" value="{{ board.description or '' }}" maxlength="200">
                        <div class="board-actions">
                            <button type="submit">Save Changes</button>
                            <a href="{{ url_for('profile') }}">Cancel</a>
                        </div>
                    </form>
                    {% else %}
                    <h3>{{ board.name }}</h3>
                    {% if board.description %}<p style="color:#6b7280;">{{ board.description }}</p>{% endif %}
                    <p style="font-size:12px;color:#9ca3af;">Last updated: {{ board.updated_at.strftime('%Y-%m-%d') }}</p>
                    <div class="board-actions">
                        <a class="btn" href="{{ url_for('board', board_id=board.id) }}">Open Board</a>
                        <a href="?edit_board={{ board.id }}">Edit</a>
                        <form method="post" action="{{ url_for('delete_board', board_id=board.id) }}">
                            <button type="submit" class="danger" onclick="return confirm('Are you sure you want to delete this board? This action cannot be undone.')">Delete</button>
                        </form>
                    </div>
                    {% endif %}
                </div>
                {% else %}
                <div class="empty">
                    <h3>No boards yet</h3>
                    <p>Create your first board to get started</p>
                </div>
                {% endfor %}
            </div>

            {% if shared_boards %}
            <div class="card">
                <h2 style="margin-bottom:12px;">Shared With You</h2>
                {% for board in shared_boards %}
                <div class="board-item">
                    <h3>{{ board.name }}</h3>
                    {% if board.description %}<p style="color:#6b7280;">{{ board.description }}</p>{% endif %}
                    <div class="board-actions">
                        <a class="btn" href="{{ url_for('board', board_id=board.id) }}">Open Board</a>
                    </div>
                </div>
                {% endfor %}
            </div>
            {% endif %}
        </div>
    </div>
</body>
</html>
'''

BOARD_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <title>KNBN - {{ board.name }}</title>
""" + _HEAD + """
    <style>
        .board-head { display: flex; justify-content: space-between; align-items: flex-start; }
        .columns { display: grid; grid-template-columns: repeat(4, minmax(220px, 1fr)); gap: 16px; overflow-x: auto; }
        .kanban-column { background: #f9fafb; border-radius: 10px; padding: 8px; min-height: 300px; }
        .kanban-column.drag-over { outline: 2px dashed #6366f1; }
        .column-header { display: flex; justify-content: space-between; align-items: center; padding: 8px; border-radius: 6px; margin-bottom: 8px; font-weight: 600; }
        .column-header.backlog { background: #e5e7eb; }
        .column-header.todo { background: #bfdbfe; }
        .column-header.in-progress { background: #e9d5ff; }
        .column-header.done { background: #bbf7d0; }
        .column-header .count { font-size: 13px; color: #4b5563; font-weight: 400; }
        .task-card { background: white; border-radius: 8px; padding: 10px; margin-bottom: 10px; box-shadow: 0 1px 3px rgba(0,0,0,0.08); cursor: grab; }
        .task-card.done { opacity: 0.6; filter: grayscale(1); }
        .task-title { font-weight: 600; font-size: 14px; }
        .task-desc { font-size: 13px; color: #6b7280; margin: 4px 0 6px; }
        .task-due { font-size: 12px; color: #6b7280; }
        .task-due.overdue { color: #dc2626; font-weight: 600; }
        .badges { display: flex; justify-content: space-between; margin-top: 6px; }
        .badge { font-size: 11px; padding: 2px 8px; border-radius: 999px; }
        .badge.low { background: #dbeafe; color: #1e40af; }
        .badge.medium { background: #fef3c7; color: #92400e; }
        .badge.high { background: #fee2e2; color: #991b1b; }
        .badge.owner { background: #f3f4f6; color: #374151; max-width: 110px; overflow: hidden; text-overflow: ellipsis; white-space: nowrap; }
        .task-actions { display: flex; gap: 6px; margin-top: 8px; align-items: center; font-size: 12px; }
        .task-actions select { width: auto; padding: 2px 4px; font-size: 12px; }
        .task-actions button { padding: 3px 8px; font-size: 12px; }
        .dialog { border: 1px solid #c7d2fe; background: #eef2ff; }
        .members li { list-style: none; display: flex; justify-content: space-between; padding: 8px; background: #f9fafb; border-radius: 6px; margin-bottom: 6px; }
        .role { font-size: 11px; background: #dbeafe; color: #1e40af; padding: 1px 6px; border-radius: 4px; }
    </style>
</head>
<body>
""" + _NAV + _TOASTS + """
    <div class="container">
        <div class="board-head">
            <a href="{{ url_for('profile') }}">&larr; Back to Profile</a>
        </div>

        <div class="card">
            <h1>{{ board.name }}</h1>
            {% if board.description %}<p style="color:#4b5563;">{{ board.description }}</p>{% endif %}
        </div>

        {% if add_status or edit_task %}
        <div class="card dialog">
            {% if edit_task %}
            <h3 style="margin-bottom:10px;">Edit Task</h3>
            <form method="post" action="{{ url_for('edit_task', board_id=board.id, task_id=edit_task.id) }}" class="form-grid">
                <input name="title" value="{{ edit_task.title }}" required maxlength="120" autofocus>
                <textarea name="description" rows="3">{{ edit_task.description }}</textarea>
                <select name="priority">
                    {% for p in priorities %}<option value="{{ p }}" {{ 'selected' if edit_task.priority.value == p }}>{{ p }}</option>{% endfor %}
                </select>
                <input type="date" name="due_date" value="{{ edit_task.due_date.strftime('%Y-%m-%d') if edit_task.due_date else '' }}">
                <input name="owner" value="{{ edit_task.owner or '' }}" placeholder="Owner">
                <div class="task-actions">
                    <button type="submit">Save</button>
                    <a href="{{ url_for('board', board_id=board.id) }}">Cancel</a>
                </div>
            </form>
            {% else %}
            <h3 style="margin-bottom:10px;">Add Task to {{ column_titles[add_status] }}</h3>
            <form method="post" action="{{ url_for('add_task', board_id=board.id) }}" class="form-grid">
                <input type="hidden" name="status" value="{{ add_status }}">
                <input name="title" placeholder="Title" required maxlength="120" autofocus>
                <textarea name="description" rows="3" placeholder="Description"></textarea>
                <select name="priority">
                    {% for p in priorities %}<option value="{{ p }}" {{ 'selected' if p == 'medium' }}>{{ p }}</option>{% endfor %}
                </select>
                <input type="date" name="due_date" value="{{ tomorrow }}">
                <input name="owner" placeholder="Owner">
                <div class="task-actions">
                    <button type="submit">Add Task</button>
                    <a href="{{ url_for('board', board_id=board.id) }}">Cancel</a>
                </div>
            </form>
            {% endif %}
        </div>
        {% endif %}

        <div class="columns" data-move-url="{{ url_for('api_move_task', board_id=board.id, task_id=0) }}">
            {% for column in columns %}
            <div class="kanban-column" data-status="{{ column.status.value }}">
                <div class="column-header {{ column.status.value }}">
                    <span>{{ column.title }} <span class="count">({{ column.tasks|length }})</span></span>
                    <a href="?add={{ column.status.value }}" title="Add task">+</a>
                </div>
                {% for task in column.tasks %}
                <div class="task-card {{ 'done' if task.status.value == 'done' }}" draggable="true" data-task-id="{{ task.id }}">
                    <div class="task-title">{{ task.title }}</div>
                    {% if task.description %}<div class="task-desc">{{ task.description|linkify }}</div>{% endif %}
                    <div class="task-due {{ 'overdue' if task.is_overdue }}">
                        {{ task.due_date.strftime('%b %d, %Y') if task.due_date else 'No due date' }}{% if task.is_overdue %} (Overdue){% endif %}
                    </div>
                    <div class="badges">
                        <span class="badge {{ task.priority.value }}">{{ task.priority.value }}</span>
                        {% if task.owner %}<span class="badge owner">{{ task.owner }}</span>{% endif %}
                    </div>
                    <div class="task-actions">
                        <a href="?edit={{ task.id }}">Edit</a>
                        <form method="post" action="{{ url_for('set_task_status', board_id=board.id, task_id=task.id) }}">
                            <select name="status" onchange="this.form.submit()">
                                {% for c in columns %}<option value="{{ c.status.value }}" {{ 'selected' if c.status == task.status }}>{{ c.title }}</option>{% endfor %}
                            </select>
                        </form>
                        <form method="post" action="{{ url_for('delete_task', board_id=board.id, task_id=task.id) }}">
                            <button type="submit" class="danger">Delete</button>
                        </form>
                    </div>
                </div>
                {% endfor %}
            </div>
            {% endfor %}
        </div>

        {% if board.is_owner %}
        <div class="card" style="margin-top:20px;">
            <h2 style="margin-bottom:12px;">Share Board</h2>
            <form method="post" action="{{ url_for('share_board', board_id=board.id) }}" style="display:flex;gap:8px;">
                <input type="email" name="email" placeholder="user@example.com" required>
                <select name="role" style="width:140px;">
                    <option value="member">Member</option>
                    <option value="owner">Owner</option>
                </select>
                <button type="submit">Add User</button>
            </form>
            <h4 style="margin:16px 0 8px;">Board Members</h4>
            <ul class="members">
                {% for member in members %}
                <li>
                    <div>
                        <div>{{ member.full_name or member.username }}</div>
                        <div style="font-size:12px;color:#6b7280;">{{ member.email }}</div>
                        <span class="role">{{ member.role.value }}</span>
                    </div>
                    {% if member.user_id != board.user_id %}
                    <form method="post" action="{{ url_for('remove_member', board_id=board.id, member_id=member.id) }}">
                        <button type="submit" class="ghost" title="Remove">&times;</button>
                    </form>
                    {% endif %}
                </li>
                {% else %}
                <p style="font-size:13px;color:#6b7280;">No other members</p>
                {% endfor %}
            </ul>
        </div>
        {% endif %}
    </div>

    <script>
        const board = document.querySelector('.columns');
        const moveUrlTemplate = board.dataset.moveUrl;

        function moveUrl(taskId) {
            return moveUrlTemplate.replace(/\\/0\\/move$/, `/${taskId}/move`);
        }

        function boxOf(el) {
            const r = el.getBoundingClientRect();
            return { left: r.left, right: r.right, top: r.top, bottom: r.bottom, height: r.height };
        }

        function showNotification(message, type) {
            const notification = document.createElement('div');
            notification.className = 'toast ' + (type === 'error' ? 'destructive' : '');
            notification.textContent = message;
            document.querySelector('.toasts').appendChild(notification);
            setTimeout(() => notification.remove(), 3000);
        }

        document.querySelectorAll('.task-card').forEach(card => {
            card.addEventListener('dragstart', e => {
                e.dataTransfer.setData('taskId', card.dataset.taskId);
                e.dataTransfer.effectAllowed = 'move';
            });
        });

        document.querySelectorAll('.kanban-column').forEach(column => {
            column.addEventListener('dragover', e => {
                e.preventDefault();
                column.classList.add('drag-over');
            });
            column.addEventListener('dragleave', () => column.classList.remove('drag-over'));
            column.addEventListener('drop', async e => {
                e.preventDefault();
                column.classList.remove('drag-over');
                const taskId = e.dataTransfer.getData('taskId');
                if (!taskId) return;

                const cards = [...column.querySelectorAll('.task-card')]
                    .filter(c => c.dataset.taskId !== taskId)
                    .map(c => ({ id: Number(c.dataset.taskId), ...boxOf(c) }));
                const columns = [...document.querySelectorAll('.kanban-column')]
                    .map(c => ({ status: c.dataset.status, ...boxOf(c) }));

                try {
                    const response = await fetch(moveUrl(taskId), {
                        method: 'POST',
                        headers: { 'Content-Type': 'application/json' },
                        body: JSON.stringify({
                            status: column.dataset.status,
                            pointer: { x: e.clientX, y: e.clientY },
                            cards: cards,
                            columns: columns
                        })
                    });
                    const data = await response.json();
                    if (!response.ok) {
                        showNotification(data.error || 'Error moving task', 'error');
                    }
                } catch (error) {
                    console.error('Move failed:', error);
                    showNotification('Error moving task', 'error');
                }
                window.location.reload();
            });
        });
    </script>
</body>
</html>
"""

NOT_FOUND_TEMPLATE = '''
<!DOCTYPE html>
<html lang="en">
<head>
    <title>KNBN - Not Found</title>
''' + _HEAD + '''
</head>
<body>
    <div class="container" style="text-align:center;padding-top:80px;">
        <h1 style="font-size:3rem;">404</h1>
        <p style="margin:12px 0 20px;">Oops! Page not found</p>
        <a class="btn" href="{{ url_for('index') }}">Return to Home</a>
    </div>
</body>
</html>
'''

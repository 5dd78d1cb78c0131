import psycopg
from psycopg.rows import dict_row
import os
import uuid
from datetime import datetime, timezone
from werkzeug.security import generate_password_hash, check_password_hash
from contextlib import contextmanager
import logging

logger = logging.getLogger(__name__)

# Columns a task update may touch
TASK_UPDATE_COLUMNS = ('title', 'description', 'status', 'priority', 'due_date', 'owner', 'position')
BOARD_UPDATE_COLUMNS = ('name', 'description', 'updated_at')


class Database:
    def __init__(self, database_url=None):
        """
        Initialize the PostgreSQL connection settings for the hosted store.
        """
        self.database_url = database_url or os.environ.get('DATABASE_URL')

        # Hosted providers still hand out postgres:// URLs
        if self.database_url and self.database_url.startswith("postgres://"):
            self.database_url = self.database_url.replace("postgres://", "postgresql://", 1)

        if not self.database_url:
            raise ValueError("DATABASE_URL environment variable is required")

        logger.info(f"Using PostgreSQL database: {self.database_url[:50]}...")
        self.init_db()

    @contextmanager
    def get_connection(self):
        """
        Context manager for PostgreSQL connections.
        """
        conn = None
        try:
            conn = psycopg.connect(self.database_url, row_factory=dict_row)
            yield conn
        except psycopg.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            if conn:
                conn.close()

    def init_db(self):
        """Initialize the database with required tables."""
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute('''
                        CREATE TABLE IF NOT EXISTS users (
                            id TEXT PRIMARY KEY,
                            email TEXT UNIQUE NOT NULL,
                            password_hash TEXT NOT NULL,
                            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                            last_sign_in_at TIMESTAMPTZ
                        )
                    ''')

                    cursor.execute('''
                        CREATE TABLE IF NOT EXISTS profiles (
                            id TEXT PRIMARY KEY REFERENCES users (id) ON DELETE CASCADE,
                            username TEXT,
                            full_name TEXT,
                            avatar_url TEXT,
                            updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                        )
                    ''')

                    cursor.execute('''
                        CREATE TABLE IF NOT EXISTS boards (
                            id TEXT PRIMARY KEY,
                            user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
                            name TEXT NOT NULL,
                            description TEXT,
                            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                            updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                        )
                    ''')

                    cursor.execute('''
                        CREATE TABLE IF NOT EXISTS board_members (
                            id SERIAL PRIMARY KEY,
                            board_id TEXT NOT NULL REFERENCES boards (id) ON DELETE CASCADE,
                            user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
                            role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('owner', 'member')),
                            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                            UNIQUE (board_id, user_id)
                        )
                    ''')

                    cursor.execute('''
                        CREATE TABLE IF NOT EXISTS tasks (
                            id SERIAL PRIMARY KEY,
                            user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
                            board_id TEXT REFERENCES boards (id) ON DELETE CASCADE,
                            title TEXT NOT NULL,
                            description TEXT DEFAULT '',
                            status TEXT NOT NULL DEFAULT 'todo'
                                CHECK (status IN ('backlog', 'todo', 'in-progress', 'done')),
                            priority TEXT NOT NULL DEFAULT 'medium'
                                CHECK (priority IN ('low', 'medium', 'high')),
                            position INTEGER DEFAULT 0,
                            owner TEXT,
                            due_date TIMESTAMPTZ,
                            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
                        )
                    ''')

                    cursor.execute('CREATE INDEX IF NOT EXISTS idx_boards_user_id ON boards(user_id)')
                    cursor.execute('CREATE INDEX IF NOT EXISTS idx_members_user_id ON board_members(user_id)')
                    cursor.execute('CREATE INDEX IF NOT EXISTS idx_tasks_user_id ON tasks(user_id)')
                    cursor.execute('CREATE INDEX IF NOT EXISTS idx_tasks_board_status_position ON tasks(board_id, status, position)')

                    conn.commit()
                    logger.info("Database initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    # User methods
    def create_user(self, email, password):
        """
        Create a new user with email and password.

        Args:
            email (str): The email address used to sign in
            password (str): Plain text password (will be hashed)

        Returns:
            dict: The user row if created, None if the email is already registered
        """
        try:
            logger.debug(f"Attempting to create user: {email}")

            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(
                        '''INSERT INTO users (id, email, password_hash) VALUES (%s, %s, %s)
                           RETURNING id, email, created_at, last_sign_in_at''',
                        (str(uuid.uuid4()), email, generate_password_hash(password))
                    )
                    user = cursor.fetchone()
                    conn.commit()
                    logger.info(f"Created user: {email} with ID: {user['id']}")
                    return dict(user)

        except psycopg.errors.UniqueViolation:
            logger.warning(f"Email already registered: {email}")
            return None

    def authenticate_user(self, email, password):
        """
        Check an email/password pair.

        Args:
            email (str): The email address
            password (str): Plain text password

        Returns:
            dict: User data if authentication successful, None otherwise
        """
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('SELECT * FROM users WHERE email = %s', (email,))
                user = cursor.fetchone()

        if user and check_password_hash(user['password_hash'], password):
            logger.info(f"User {email} authenticated successfully")
            user = dict(user)
            user.pop('password_hash', None)
            return user

        logger.warning(f"Authentication failed for user: {email}")
        return None

    def touch_last_sign_in(self, user_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(
                    'UPDATE users SET last_sign_in_at = %s WHERE id = %s RETURNING last_sign_in_at',
                    (datetime.now(timezone.utc), user_id)
                )
                row = cursor.fetchone()
                conn.commit()
        return row['last_sign_in_at'] if row else None

    def get_user(self, user_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(
                    'SELECT id, email, created_at, last_sign_in_at FROM users WHERE id = %s',
                    (user_id,)
                )
                return cursor.fetchone()

    def find_user_by_email(self, email):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(
                    'SELECT id, email, created_at, last_sign_in_at FROM users WHERE email = %s',
                    (email,)
                )
                return cursor.fetchone()

    # Profile methods
    def get_profile(self, user_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('SELECT * FROM profiles WHERE id = %s', (user_id,))
                return cursor.fetchone()

    def upsert_profile(self, profile):
        """
        Insert or replace a profile row.

        Args:
            profile (dict): id, username, full_name, avatar_url, updated_at

        Returns:
            dict: The stored profile row
        """
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('''
                    INSERT INTO profiles (id, username, full_name, avatar_url, updated_at)
                    VALUES (%(id)s, %(username)s, %(full_name)s, %(avatar_url)s, %(updated_at)s)
                    ON CONFLICT (id) DO UPDATE SET
                        username = EXCLUDED.username,
                        full_name = EXCLUDED.full_name,
                        avatar_url = EXCLUDED.avatar_url,
                        updated_at = EXCLUDED.updated_at
                    RETURNING *
                ''', profile)
                row = cursor.fetchone()
                conn.commit()
                logger.info(f"Saved profile for user {profile['id']}")
                return row

    # Board methods
    def get_owned_boards(self, user_id):
        """
        Get the boards a user owns, newest first.

        Args:
            user_id (str): The user ID

        Returns:
            list: Board rows
        """
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(
                    'SELECT * FROM boards WHERE user_id = %s ORDER BY created_at DESC',
                    (user_id,)
                )
                return cursor.fetchall()

    def get_shared_boards(self, user_id):
        """Boards the user joined through a membership but does not own."""
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('''
                    SELECT b.*, m.role AS member_role
                    FROM boards b
                    JOIN board_members m ON m.board_id = b.id
                    WHERE m.user_id = %s AND b.user_id <> %s
                    ORDER BY b.created_at DESC
                ''', (user_id, user_id))
                return cursor.fetchall()

    def get_board(self, board_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('SELECT * FROM boards WHERE id = %s', (board_id,))
                return cursor.fetchone()

    def create_board(self, user_id, name, description=None):
        """
        Create a new board and register its creator as an owner member.

        Args:
            user_id (str): The user ID
            name (str): Board name
            description (str): Optional description

        Returns:
            dict: The new board row
        """
        try:
            board_id = str(uuid.uuid4())
            logger.debug(f"Creating board '{name}' for user {user_id} with ID: {board_id}")

            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(
                        '''INSERT INTO boards (id, user_id, name, description)
                           VALUES (%s, %s, %s, %s) RETURNING *''',
                        (board_id, user_id, name, description)
                    )
                    board = cursor.fetchone()
                    cursor.execute(
                        "INSERT INTO board_members (board_id, user_id, role) VALUES (%s, %s, 'owner')",
                        (board_id, user_id)
                    )
                    conn.commit()
                    logger.info(f"Created board '{name}' for user {user_id}")
                    return board

        except Exception as e:
            logger.error(f"Failed to create board '{name}' for user {user_id}: {e}")
            raise

    def update_board(self, board_id, fields):
        """
        Update board columns.

        Args:
            board_id (str): The board ID
            fields (dict): Subset of name, description, updated_at

        Returns:
            dict: The updated board row, None if the board does not exist
        """
        updates = {key: value for key, value in fields.items() if key in BOARD_UPDATE_COLUMNS}
        if not updates:
            return self.get_board(board_id)
        set_clause = ", ".join(f"{column} = %s" for column in updates.keys())
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(
                    f"UPDATE boards SET {set_clause} WHERE id = %s RETURNING *",
                    (*updates.values(), board_id)
                )
                row = cursor.fetchone()
                conn.commit()
                logger.info(f"Updated board {board_id}: {sorted(updates)}")
                return row

    def delete_board(self, board_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('DELETE FROM boards WHERE id = %s', (board_id,))
                deleted = cursor.rowcount
                conn.commit()
                logger.info(f"Deleted board {board_id}")
                return deleted > 0

    # Membership methods
    def get_membership(self, board_id, user_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(
                    'SELECT * FROM board_members WHERE board_id = %s AND user_id = %s',
                    (board_id, user_id)
                )
                return cursor.fetchone()

    def get_member(self, member_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('SELECT * FROM board_members WHERE id = %s', (member_id,))
                return cursor.fetchone()

    def list_members(self, board_id):
        """
        List the members of a board with their profile details.

        Returns:
            list: Rows with id, board_id, user_id, role, username, full_name, email
        """
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('''
                    SELECT m.id, m.board_id, m.user_id, m.role,
                           p.username, p.full_name, u.email
                    FROM board_members m
                    JOIN users u ON u.id = m.user_id
                    LEFT JOIN profiles p ON p.id = m.user_id
                    WHERE m.board_id = %s
                    ORDER BY m.created_at, m.id
                ''', (board_id,))
                return cursor.fetchall()

    def add_member(self, board_id, user_id, role):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(
                    'INSERT INTO board_members (board_id, user_id, role) VALUES (%s, %s, %s) RETURNING *',
                    (board_id, user_id, role)
                )
                row = cursor.fetchone()
                conn.commit()
                logger.info(f"Added user {user_id} to board {board_id} as {role}")
                return row

    def delete_member(self, member_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('DELETE FROM board_members WHERE id = %s', (member_id,))
                deleted = cursor.rowcount
                conn.commit()
                logger.info(f"Removed membership {member_id}")
                return deleted > 0

    # Task methods
    def select_tasks(self, user_id=None, board_id=None):
        """
        Select tasks, filtered by board when given, otherwise by creating user.

        Args:
            user_id (str): The user ID (used when no board is given)
            board_id (str): Optional board ID

        Returns:
            list: Task rows ordered by position then creation time
        """
        if board_id is None and user_id is None:
            raise ValueError("select_tasks needs a user_id or a board_id")
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                if board_id is not None:
                    cursor.execute(
                        'SELECT * FROM tasks WHERE board_id = %s ORDER BY position, created_at, id',
                        (board_id,)
                    )
                else:
                    cursor.execute(
                        'SELECT * FROM tasks WHERE user_id = %s ORDER BY position, created_at, id',
                        (user_id,)
                    )
                return cursor.fetchall()

    def next_task_position(self, user_id, board_id, status):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                if board_id is not None:
                    cursor.execute(
                        'SELECT COALESCE(MAX(position), 0) AS pos FROM tasks WHERE board_id = %s AND status = %s',
                        (board_id, status)
                    )
                else:
                    cursor.execute(
                        '''SELECT COALESCE(MAX(position), 0) AS pos FROM tasks
                           WHERE user_id = %s AND board_id IS NULL AND status = %s''',
                        (user_id, status)
                    )
                return (cursor.fetchone()['pos'] or 0) + 1

    def insert_task(self, task):
        """
        Insert a task row.

        Args:
            task (dict): title, description, status, priority, created_at,
                due_date, owner, user_id, board_id, position

        Returns:
            dict: The stored row
        """
        try:
            logger.debug(f"Adding task '{task['title']}' to board {task.get('board_id')} for user {task['user_id']}")

            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute('''
                        INSERT INTO tasks (title, description, status, priority, created_at,
                                           due_date, owner, user_id, board_id, position)
                        VALUES (%(title)s, %(description)s, %(status)s, %(priority)s, %(created_at)s,
                                %(due_date)s, %(owner)s, %(user_id)s, %(board_id)s, %(position)s)
                        RETURNING *
                    ''', task)
                    row = cursor.fetchone()
                    conn.commit()
                    logger.info(f"Added task '{task['title']}' with ID: {row['id']}")
                    return row

        except Exception as e:
            logger.error(f"Failed to add task '{task.get('title')}': {e}")
            raise

    def update_task(self, task_id, fields):
        """
        Update task columns.

        Args:
            task_id (int): The task ID
            fields (dict): Any of title, description, status, priority,
                due_date, owner, position

        Returns:
            bool: True when a row was updated
        """
        updates = {key: value for key, value in fields.items() if key in TASK_UPDATE_COLUMNS}
        if not updates:
            return False
        set_clause = ", ".join(f"{column} = %s" for column in updates.keys())
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(
                    f"UPDATE tasks SET {set_clause} WHERE id = %s",
                    (*updates.values(), task_id)
                )
                updated = cursor.rowcount
                conn.commit()
                logger.info(f"Updated task {task_id}: {sorted(updates)}")
                return updated > 0

    def update_task_positions(self, ordered_task_ids):
        """Write 1-based positions following the given order."""
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                for position, task_id in enumerate(ordered_task_ids, start=1):
                    cursor.execute('UPDATE tasks SET position = %s WHERE id = %s', (position, task_id))
                conn.commit()
        logger.debug(f"Reordered {len(ordered_task_ids)} tasks")

    def delete_task(self, task_id):
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute('DELETE FROM tasks WHERE id = %s', (task_id,))
                deleted = cursor.rowcount
                conn.commit()
                logger.info(f"Deleted task {task_id}")
                return deleted > 0

    def get_database_stats(self):
        """
        Get database statistics for debugging/monitoring.

        Returns:
            dict: Database statistics
        """
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                stats = {}
                for table in ('users', 'boards', 'board_members', 'tasks'):
                    cursor.execute(f'SELECT COUNT(*) as count FROM {table}')
                    stats[f'total_{table}'] = cursor.fetchone()['count']
                cursor.execute('SELECT status, COUNT(*) as count FROM tasks GROUP BY status')
                stats['tasks_by_status'] = {row['status']: row['count'] for row in cursor.fetchall()}
        return stats

"""
KNBN session store

Tracks the authenticated identity for one client. The identity lives in a
mapping supplied by the caller (the Flask cookie session, or a per-session
dict on the MCP server) so the same store works for both surfaces.

Subscribers registered with on_auth_state_change() are called with
(event, session) on every sign-in and sign-out.
"""

import logging
import os
from datetime import datetime

from notifications import Notifier

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

SESSION_KEY = "auth"


def _iso(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SessionStore:
    MIN_PASSWORD_LENGTH = int(os.environ.get('MIN_PASSWORD_LENGTH', '6'))

    def __init__(self, database, storage, notifier=None):
        self.db = database
        self.storage = storage
        self.notifier = notifier or Notifier()
        self._listeners = {}
        self._next_listener_id = 0

    @property
    def session(self):
        return self.storage.get(SESSION_KEY)

    @property
    def user(self):
        current = self.session
        return current['user'] if current else None

    @property
    def user_id(self):
        user = self.user
        return user['id'] if user else None

    def get_session(self):
        return self.session

    def on_auth_state_change(self, callback):
        """Register a callback; returns a function that unsubscribes it."""
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = callback

        def unsubscribe():
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _emit(self, event):
        current = self.session
        logger.info(f"Auth state change: {event} user={current['user']['id'] if current else None}")
        for callback in list(self._listeners.values()):
            callback(event, current)

    def _start_session(self, user):
        self.storage[SESSION_KEY] = {
            'user': {
                'id': user['id'],
                'email': user['email'],
                'created_at': _iso(user.get('created_at')),
                'last_sign_in_at': _iso(user.get('last_sign_in_at')),
            },
            'signed_in_at': datetime.now().isoformat(),
        }
        self._emit(SIGNED_IN)
        self.notifier.notify("Signed in successfully", f"Welcome {user['email']}!")

    def _validate_credentials(self, email, password):
        if not email:
            return "Email is required"
        if len(password or '') < self.MIN_PASSWORD_LENGTH:
            return f"Password must be at least {self.MIN_PASSWORD_LENGTH} characters"
        return None

    def sign_up(self, email, password):
        """
        Register a new account and sign it in.

        Returns:
            dict: The session user, None when registration failed
        """
        email = (email or '').strip().lower()
        problem = self._validate_credentials(email, password)
        if problem:
            self.notifier.error("Error signing up", problem)
            return None

        try:
            user = self.db.create_user(email, password)
        except Exception as e:
            logger.error(f"Sign-up error for {email}: {e}")
            self.notifier.error("Error signing up", "An error occurred during sign up")
            return None

        if user is None:
            self.notifier.error("Error signing up", "User already registered")
            return None

        self._start_session(user)
        return self.user

    def sign_in_with_password(self, email, password):
        """
        Sign in with an email/password pair.

        Returns:
            dict: The session user, None when the credentials were rejected
        """
        email = (email or '').strip().lower()
        try:
            user = self.db.authenticate_user(email, password or '')
            if user:
                user['last_sign_in_at'] = self.db.touch_last_sign_in(user['id'])
        except Exception as e:
            logger.error(f"Sign-in error for {email}: {e}")
            self.notifier.error("Error signing in", "An error occurred during sign in")
            return None

        if not user:
            self.notifier.error("Error signing in", "Invalid login credentials")
            return None

        self._start_session(user)
        return self.user

    def sign_out(self):
        if self.session is None:
            return
        try:
            self.storage.pop(SESSION_KEY, None)
        except Exception as e:
            logger.error(f"Error signing out: {e}")
            self.notifier.error("Error signing out", "There was a problem signing out")
            return
        self._emit(SIGNED_OUT)
        self.notifier.notify("Signed out", "You have been signed out")

    def refresh(self):
        """Drop the session when its user no longer exists in the store."""
        user_id = self.user_id
        if user_id is None:
            return None
        try:
            row = self.db.get_user(user_id)
        except Exception as e:
            logger.error(f"Could not refresh session for {user_id}: {e}")
            return self.user
        if row is None:
            logger.warning(f"Session user {user_id} no longer exists")
            self.sign_out()
            return None
        return self.user

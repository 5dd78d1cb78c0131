"""
KNBN board management

Board listing, creation, editing and deletion, plus sharing a board with other
users through memberships. Access follows the membership table: the creator
of a board is its owner, shared users are members or co-owners.
"""

import logging

from models import (
    Board,
    BoardMember,
    DEFAULT_BOARD_DESCRIPTION,
    DEFAULT_BOARD_NAME,
    MemberRole,
    utcnow,
)
from notifications import Notifier

logger = logging.getLogger(__name__)


class BoardManager:
    """Board and membership operations on behalf of one signed-in user."""

    def __init__(self, database, notifier=None):
        self.db = database
        self.notifier = notifier or Notifier()

    def list_boards(self, user_id):
        """
        Boards for the profile page.

        Args:
            user_id (str): The signed-in user

        Returns:
            tuple: (owned boards, boards shared with the user); empty lists on error
        """
        try:
            owned = [Board.from_row(row, is_owner=True) for row in self.db.get_owned_boards(user_id)]
            shared = [
                Board.from_row(row, is_owner=row.get('member_role') == MemberRole.OWNER.value)
                for row in self.db.get_shared_boards(user_id)
            ]
            return owned, shared
        except Exception as e:
            logger.error(f"Error fetching boards for {user_id}: {e}")
            self.notifier.error("Error loading boards", "Unable to load your boards.")
            return [], []

    def get_board(self, board_id, user_id):
        """
        Load a board the user may see.

        Returns:
            Board: with is_owner set, or None when missing or not accessible
        """
        try:
            row = self.db.get_board(board_id)
            if row is None:
                self.notifier.error(
                    "Board not found",
                    "The board you requested could not be found or you do not have access to it.",
                )
                return None

            membership = self.db.get_membership(board_id, user_id)
            is_creator = str(row['user_id']) == str(user_id)
            if membership is None and not is_creator:
                logger.warning(f"User {user_id} has no access to board {board_id}")
                self.notifier.error(
                    "Board not found",
                    "The board you requested could not be found or you do not have access to it.",
                )
                return None

            is_owner = is_creator or membership['role'] == MemberRole.OWNER.value
            return Board.from_row(row, is_owner=is_owner)
        except Exception as e:
            logger.error(f"Error fetching board {board_id}: {e}")
            self.notifier.error("Error loading board", "There was a problem loading the board. Please try again.")
            return None

    def create_board(self, user_id, name, description=None):
        name = (name or '').strip()
        if not name:
            self.notifier.error("Error creating board", "Board name cannot be empty.")
            return None
        try:
            row = self.db.create_board(user_id, name, (description or '').strip() or None)
        except Exception as e:
            logger.error(f"Error creating board: {e}")
            self.notifier.error("Error creating board", "Unable to create the board. Please try again.")
            return None
        self.notifier.notify("Board created", f"'{name}' is ready.")
        return Board.from_row(row, is_owner=True)

    def ensure_default_board(self, user_id):
        """Return the user's first board, creating the default one when none exists."""
        try:
            boards = self.db.get_owned_boards(user_id)
            if boards:
                return Board.from_row(boards[-1], is_owner=True)
            row = self.db.create_board(user_id, DEFAULT_BOARD_NAME, DEFAULT_BOARD_DESCRIPTION)
            logger.info(f"Created default board for user {user_id}")
            self.notifier.notify("Board created", "Your board has been created successfully.")
            return Board.from_row(row, is_owner=True)
        except Exception as e:
            logger.error(f"Error navigating to board: {e}")
            self.notifier.error("Error", "Unable to access or create your board.")
            return None

    def update_board(self, board, name, description=None):
        if not board.is_owner:
            self.notifier.error("Error updating board", "Only board owners can edit a board.")
            return None
        name = (name or '').strip()
        if not name:
            self.notifier.error("Error updating board", "Board name cannot be empty.")
            return None
        try:
            row = self.db.update_board(board.id, {
                'name': name,
                'description': (description or '').strip(),
                'updated_at': utcnow(),
            })
        except Exception as e:
            logger.error(f"Error updating board: {e}")
            self.notifier.error("Error updating board", "Unable to update the board. Please try again.")
            return None
        if row is None:
            self.notifier.error("Error updating board", "Board not found.")
            return None
        self.notifier.notify("Board updated", "Your board has been updated successfully.")
        return Board.from_row(row, is_owner=True)

    def delete_board(self, board):
        if not board.is_owner:
            self.notifier.error("Error deleting board", "Only board owners can delete a board.")
            return False
        try:
            self.db.delete_board(board.id)
        except Exception as e:
            logger.error(f"Error deleting board: {e}")
            self.notifier.error("Error deleting board", "Unable to delete the board. Please try again.")
            return False
        self.notifier.notify("Board deleted", "Your board has been deleted successfully.")
        return True

    # Sharing
    def list_members(self, board_id):
        try:
            return [BoardMember.from_row(row) for row in self.db.list_members(board_id)]
        except Exception as e:
            logger.error(f"Error fetching board members: {e}")
            self.notifier.error("Error", "Failed to load board members")
            return []

    def share_board(self, board, email, role=MemberRole.MEMBER.value):
        """
        Give another registered user access to a board.

        Returns:
            BoardMember: the new membership, None when nothing was added
        """
        email = (email or '').strip().lower()
        if not email:
            return None
        if not board.is_owner:
            self.notifier.error("Error sharing board", "Only board owners can share a board.")
            return None
        try:
            role = MemberRole(role).value
        except ValueError:
            self.notifier.error("Error sharing board", f"Unknown role: {role}")
            return None

        try:
            user = self.db.find_user_by_email(email)
            if user is None:
                self.notifier.error("User not found", "No user found with this email address.")
                return None

            if self.db.get_membership(board.id, user['id']) is not None:
                self.notifier.error("Already a member", "This user is already a member of this board.")
                return None

            self.db.add_member(board.id, user['id'], role)
        except Exception as e:
            logger.error(f"Error sharing board: {e}")
            self.notifier.error("Error sharing board", "Failed to share the board. Please try again.")
            return None

        self.notifier.notify("Board shared", f"Board has been shared with {email}")
        for member in self.list_members(board.id):
            if member.user_id == str(user['id']):
                return member
        return None

    def remove_member(self, board, member_id):
        if not board.is_owner:
            self.notifier.error("Error", "Only board owners can remove members.")
            return False
        try:
            member = self.db.get_member(member_id)
            if member is None or str(member['board_id']) != board.id:
                self.notifier.error("Error", "Member not found on this board")
                return False
            if str(member['user_id']) == board.user_id:
                self.notifier.error("Error", "The board creator cannot be removed")
                return False
            self.db.delete_member(member_id)
        except Exception as e:
            logger.error(f"Error removing member: {e}")
            self.notifier.error("Error", "Failed to remove user from the board")
            return False
        self.notifier.notify("Member removed", "User has been removed from the board")
        return True

"""Profile lookup and editing for the signed-in user."""

import logging

from models import Profile, utcnow
from notifications import Notifier

logger = logging.getLogger(__name__)


class ProfileManager:
    def __init__(self, database, notifier=None):
        self.db = database
        self.notifier = notifier or Notifier()

    def fetch_profile(self, user):
        """
        Load the user's profile, creating it on first visit.

        Args:
            user (dict): Session user with id and email

        Returns:
            Profile: or None on error
        """
        try:
            row = self.db.get_profile(user['id'])
            if row is not None:
                return Profile.from_row(row)

            profile = Profile(
                id=user['id'],
                username=(user.get('email') or '').split('@')[0],
                full_name='',
                avatar_url=None,
                updated_at=utcnow(),
            )
            self.db.upsert_profile(profile.to_row())
            logger.info(f"Created profile for user {user['id']}")
            return profile
        except Exception as e:
            logger.error(f"Error fetching profile: {e}")
            self.notifier.error("Error fetching profile", "Unable to load your profile information.")
            return None

    def update_profile(self, user, username, full_name, avatar_url=None):
        if not user:
            self.notifier.error("Authentication required", "Please sign in to update your profile.")
            return None
        profile = Profile(
            id=user['id'],
            username=(username or '').strip(),
            full_name=(full_name or '').strip(),
            avatar_url=(avatar_url or '').strip() or None,
            updated_at=utcnow(),
        )
        try:
            row = self.db.upsert_profile(profile.to_row())
        except Exception as e:
            logger.error(f"Error updating profile: {e}")
            self.notifier.error("Error updating profile", f"Unable to update your profile. Please try again. {e}")
            return None
        self.notifier.notify("Profile updated", "Your profile has been updated successfully.")
        return Profile.from_row(row) if row else profile

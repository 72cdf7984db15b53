# -*- coding: utf-8 -*-
"""
Auto-signup on first contact.

Creation is idempotent through the users primary key: when two first
messages race, one insert wins and the other sees DuplicateKeyError, which
counts as success. Default categories are seeded only by the winner.
"""

import logging
from datetime import datetime, timezone

from aiexpense.errors import DuplicateKeyError, PersistenceError, SignupError
from aiexpense.storage.repositories import CategoryRepository, UserRepository
from aiexpense.types import DEFAULT_CATEGORIES, Source, User

logger = logging.getLogger(__name__)


class SignupCoordinator:
    def __init__(self, users: UserRepository, categories: CategoryRepository):
        self.users = users
        self.categories = categories

    def ensure_user(self, user_id: str, source: Source) -> bool:
        """
        Make sure (source, user_id) exists.

        Returns:
            True if this call created the user, False if it already existed

        Raises:
            SignupError: creation failed for a reason other than a duplicate key
        """
        user = User(user_id=user_id, messenger_type=source.value, created_at=datetime.now(timezone.utc))
        try:
            self.users.create(user)
        except DuplicateKeyError:
            return False
        except PersistenceError as e:
            raise SignupError(f"could not create user {source.value}/{user_id}: {e}") from e

        logger.info(f"New user signed up: {source.value}/{user_id}")
        self._seed_categories(user_id, source.value)
        return True

    def _seed_categories(self, user_id: str, messenger_type: str) -> None:
        for name in DEFAULT_CATEGORIES:
            try:
                self.categories.create(user_id, messenger_type, name, is_default=True)
            except PersistenceError as e:
                logger.error(f"Failed to seed category {name} for user {messenger_type}/{user_id}: {e}")

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
User-context collaborators for the auto-fill engine.

The engine reads a UserContext snapshot through a UserContextProvider and
writes manual edits back through a ProfileWriter. Storage is owned by the
caller; InMemoryUserContextStore implements both contracts over plain dicts.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from formfill_common.models import Profile, UserContext
from formfill_common.tables import DEFAULT_TABLES, LookupTables
from formfill_common.utils import normalize_key

logger = logging.getLogger(__name__)


class UserContextProvider(ABC):
    @abstractmethod
    def fetch(self, user_id: str, household_member_id: Optional[str] = None) -> UserContext:
        """Return a read-only snapshot of the user's profile, household and saved dates."""


class ProfileWriter(ABC):
    @abstractmethod
    def save(self, user_id: str, key: str, value: Any) -> None:
        """Persist a manually entered value against the user's profile."""


def profile_write_target(key: str, tables: LookupTables = DEFAULT_TABLES) -> Tuple[str, bool]:
    """
    Resolve where a field value is written on the profile.

    Returns:
        Tuple of (attribute or custom-field key, is_custom)
    """
    normalized = normalize_key(key)
    attribute = tables.profile_attributes.get(normalized)
    if attribute:
        return attribute, False
    return normalized, True


class InMemoryUserContextStore(UserContextProvider, ProfileWriter):
    """Dict-backed context store for tests and single-process callers."""

    def __init__(self, contexts: Optional[Dict[str, UserContext]] = None,
                 tables: LookupTables = DEFAULT_TABLES):
        self._contexts: Dict[str, UserContext] = dict(contexts or {})
        self._lock = threading.Lock()
        self.tables = tables

    def put(self, user_id: str, context: UserContext) -> None:
        with self._lock:
            self._contexts[user_id] = context

    def fetch(self, user_id: str, household_member_id: Optional[str] = None) -> UserContext:
        with self._lock:
            context = copy.deepcopy(self._contexts.get(user_id) or UserContext())

        if household_member_id is not None:
            context.household_members = [
                m for m in context.household_members if m.id == household_member_id
            ]
        return context

    def save(self, user_id: str, key: str, value: Any) -> None:
        attribute, is_custom = profile_write_target(key, self.tables)
        with self._lock:
            context = self._contexts.setdefault(user_id, UserContext())
            if context.profile is None:
                context.profile = Profile(id=user_id)
            if is_custom:
                context.profile.custom_fields[attribute] = value
            else:
                setattr(context.profile, attribute, value)
        logger.info(f"Saved {'custom field' if is_custom else 'profile attribute'} '{attribute}' for user {user_id}")

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Any]], tables: LookupTables = DEFAULT_TABLES) -> "InMemoryUserContextStore":
        """Build a store from ``{user_id: context_dict}``."""
        return cls({user_id: UserContext.from_dict(ctx) for user_id, ctx in data.items()}, tables=tables)


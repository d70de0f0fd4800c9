"""
Per-user settings stores: targets and calendar sync configuration.

The sync config store is the only place OAuth tokens are written. The sync
service itself never holds them between calls; callers load a config here,
pass it in, and save whatever comes back.
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from bp_tracker.domain.calendar import CalendarSyncConfig
from bp_tracker.domain.reading import DEFAULT_TARGETS, UserTargets
from bp_tracker.infrastructure.storage.json_file import JsonFileStore
from bp_tracker.utils.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)


class TargetsStore(JsonFileStore):
    """One active ``UserTargets`` value per user, keyed by user id."""

    def __init__(self, path: str | Path) -> None:
        super().__init__(path, default={})

    def get(self, user_id: str) -> UserTargets:
        """
        Return the user's targets, or the defaults if none were saved.

        Saved values are merged over the defaults so an older document that
        lacks a field still loads.
        """
        saved = self._load().get(user_id)
        if not saved:
            return DEFAULT_TARGETS.model_copy()
        try:
            return UserTargets(**{**DEFAULT_TARGETS.model_dump(), **saved})
        except PydanticValidationError as e:
            logger.error(f"Stored targets for {user_id} are invalid, using defaults: {e}")
            return DEFAULT_TARGETS.model_copy()

    def update(self, user_id: str, **changes: int | None) -> UserTargets:
        """
        Overwrite some of the user's targets.

        Args:
            user_id: Owner of the targets.
            **changes: Any of ``systolic``, ``diastolic``, ``pulse``. None values are ignored.

        Raises:
            ValidationError: If the merged targets fall outside the allowed ranges.
        """
        unknown = set(changes) - set(UserTargets.model_fields)
        if unknown:
            raise ValidationError(f"Unknown target field(s): {', '.join(sorted(unknown))}")

        current = self.get(user_id)
        merged = {
            **current.model_dump(),
            **{k: v for k, v in changes.items() if v is not None},
        }
        try:
            updated = UserTargets(**merged)
        except PydanticValidationError as e:
            messages = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
            raise ValidationError(messages) from e

        self._write(user_id, updated)
        return updated

    def reset(self, user_id: str) -> UserTargets:
        """Restore the default targets (120/80, pulse 70)."""
        defaults = DEFAULT_TARGETS.model_copy()
        self._write(user_id, defaults)
        return defaults

    def _write(self, user_id: str, targets: UserTargets) -> None:
        document = self._load()
        document[user_id] = targets.model_dump()
        self._save(document)
        logger.info(f"Saved targets for user {user_id}")


class SyncConfigStore(JsonFileStore):
    """
    Calendar sync configuration per user.

    Also remembers the anti-CSRF state of an authorization that is waiting for
    its callback, since the redirect and the code exchange happen in
    different invocations.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__(path, default={"configs": {}, "oauth_states": {}})

    def load(self, user_id: str) -> CalendarSyncConfig:
        """Return the saved config, or a disconnected one."""
        data: dict[str, Any] | None = self._load().get("configs", {}).get(user_id)
        if not data:
            return CalendarSyncConfig()
        try:
            return CalendarSyncConfig(**data)
        except PydanticValidationError as e:
            raise StorageError(f"Stored calendar config for {user_id} is invalid: {e}") from e

    def save(self, user_id: str, config: CalendarSyncConfig) -> None:
        document = self._load()
        document.setdefault("configs", {})[user_id] = config.to_storage_dict()
        self._save(document)
        logger.debug(f"Saved calendar sync config for user {user_id}")

    def clear(self, user_id: str) -> None:
        document = self._load()
        if document.setdefault("configs", {}).pop(user_id, None) is not None:
            self._save(document)
            logger.info(f"Discarded calendar sync config for user {user_id}")

    def save_pending_state(self, user_id: str, state: str) -> None:
        document = self._load()
        document.setdefault("oauth_states", {})[user_id] = state
        self._save(document)

    def pop_pending_state(self, user_id: str) -> str | None:
        """Return and forget the pending authorization state, if any."""
        document = self._load()
        state: str | None = document.setdefault("oauth_states", {}).pop(user_id, None)
        if state is not None:
            self._save(document)
        return state

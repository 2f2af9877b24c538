"""
Review Persistence Module.

Repositories store review entities outside the process. The JSON file
repository writes one document per key:

    <base_dir>/cases/<case_id>.json       case plus its audit log
    <base_dir>/sessions/<session_id>.json
    <base_dir>/shields/<key>.json          list of cleanup shields

Author: ML Engineering Team
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union
import json
import os
import re
import threading

from config import get_config
from bill_review.cleanup.types import CleanupShield
from bill_review.utils.exceptions import PersistenceError
from bill_review.utils.helpers import ensure_directory
from bill_review.utils.logger import get_logger
from .models import ReviewCase, ReviewSession, StateTransition

# Initialize module logger
logger = get_logger(__name__)

# Keys become file names; anything else is replaced
UNSAFE_KEY_CHARS = re.compile(r'[^A-Za-z0-9._-]')


class ReviewRepository(ABC):
    """Abstract store for cases, sessions and shield sets."""

    @abstractmethod
    def save_case(self, case: ReviewCase, audit: Sequence[StateTransition]) -> None:
        pass

    @abstractmethod
    def load_case(self, case_id: str) -> Optional[Tuple[ReviewCase, List[StateTransition]]]:
        pass

    @abstractmethod
    def save_session(self, session: ReviewSession) -> None:
        pass

    @abstractmethod
    def load_session(self, session_id: str) -> Optional[ReviewSession]:
        pass

    @abstractmethod
    def save_shields(self, key: str, shields: Sequence[CleanupShield]) -> None:
        pass

    @abstractmethod
    def load_shields(self, key: str) -> List[CleanupShield]:
        pass


class JsonFileRepository(ReviewRepository):
    """
    Repository writing pretty-printed JSON files.

    Writes go to a temporary file that is then renamed over the target,
    so readers never observe a half-written document.

    Example:
        >>> repo = JsonFileRepository("outputs/repository")
        >>> repo.save_case(case, audit)
        >>> restored, restored_audit = repo.load_case(case.case_id)
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None) -> None:
        if base_dir is None:
            base_dir = get_config("paths.repository_dir", "outputs/repository")
        self.base_dir = Path(base_dir)
        self._lock = threading.Lock()
        logger.debug(f"JsonFileRepository rooted at {self.base_dir}")

    def _path(self, kind: str, key: str) -> Path:
        return self.base_dir / kind / f"{UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def _write(self, kind: str, key: str, payload: Any) -> None:
        path = self._path(kind, key)
        try:
            ensure_directory(path.parent)
            tmp_path = path.with_suffix('.json.tmp')
            with self._lock:
                with open(tmp_path, 'w', encoding='utf-8') as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"write {kind}/{key}", str(e)) from e
        logger.debug(f"Saved {kind}/{key} to {path}")

    def _read(self, kind: str, key: str) -> Optional[Any]:
        path = self._path(kind, key)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"read {kind}/{key}", str(e)) from e

    def save_case(self, case: ReviewCase, audit: Sequence[StateTransition]) -> None:
        self._write("cases", case.case_id, {
            'case': case.to_dict(),
            'audit': [entry.to_dict() for entry in audit],
        })

    def load_case(self, case_id: str) -> Optional[Tuple[ReviewCase, List[StateTransition]]]:
        """
        Load a case and its audit log.

        Returns:
            (case, audit), or None when no document exists.

        Raises:
            PersistenceError: If the document is unreadable or malformed.
        """
        data = self._read("cases", case_id)
        if data is None:
            return None
        try:
            case = ReviewCase.from_dict(data['case'])
            audit = [StateTransition.from_dict(entry) for entry in data.get('audit', [])]
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError(f"decode cases/{case_id}", str(e)) from e
        return case, audit

    def save_session(self, session: ReviewSession) -> None:
        self._write("sessions", session.session_id, session.to_dict())

    def load_session(self, session_id: str) -> Optional[ReviewSession]:
        data = self._read("sessions", session_id)
        if data is None:
            return None
        try:
            return ReviewSession.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError(f"decode sessions/{session_id}", str(e)) from e

    def save_shields(self, key: str, shields: Sequence[CleanupShield]) -> None:
        self._write("shields", key, [shield.to_dict() for shield in shields])

    def load_shields(self, key: str) -> List[CleanupShield]:
        """Load a shield set; an unknown key yields an empty list."""
        data = self._read("shields", key)
        if data is None:
            return []
        try:
            return [CleanupShield.from_dict(item) for item in data]
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError(f"decode shields/{key}", str(e)) from e


__all__ = ['ReviewRepository', 'JsonFileRepository']

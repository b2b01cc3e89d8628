"""
BloodLink persistence
JSON-file backed stores owned by the application: the geocode cache and the user directory.
Each store is loaded once at startup and written through on every mutation.
"""
import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone

from errors import CacheWriteFailure, DuplicateEmail, StoreWriteFailure, UserNotFound
from geocoding import GeoPoint

logger = logging.getLogger(__name__)


# ============== JSON FILES ==============

def load_json_file(file_path, default_value=None):
    """Load data from JSON file; a missing or unreadable file yields the default"""
    if os.path.exists(file_path):
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Error loading %s: %s", file_path, e)
    return default_value


def save_json_file(file_path, data, error_class=StoreWriteFailure):
    """Atomically replace file_path with data serialised as JSON"""
    directory = os.path.dirname(os.path.abspath(file_path))
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix='.tmp-', suffix='.json', dir=directory)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, file_path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise error_class(f"Error saving {file_path}: {e}") from e


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


# ============== GEOCODE CACHE ==============

class GeocodeCache:
    """
    Persisted mapping of cache key -> GeoPoint.

    Keys are ``addr:<lowercased normalized address>`` or ``pin:<postal code>``.
    Entries are never evicted. Writes are best-effort: a failed flush is
    logged and the in-memory entry is kept.
    """

    def __init__(self, file_path):
        self.file_path = file_path
        self._lock = threading.RLock()
        self._entries = {}
        raw = load_json_file(file_path, {})
        if not isinstance(raw, dict):
            logger.warning("Ignoring geocode cache %s: expected a JSON object", file_path)
            raw = {}
        for key, value in raw.items():
            try:
                self._entries[key] = GeoPoint.from_dict(value)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed cache entry %r", key)
        logger.debug("Loaded %d geocode cache entries from %s", len(self._entries), file_path)

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return key in self._entries

    def get(self, key):
        return self._entries.get(key)

    def set(self, key, point):
        with self._lock:
            self._entries[key] = point
            try:
                self.flush()
            except CacheWriteFailure as e:
                logger.warning("Geocode cache write failed: %s", e)

    def flush(self):
        with self._lock:
            data = {key: point.to_dict() for key, point in self._entries.items()}
            save_json_file(self.file_path, data, error_class=CacheWriteFailure)


# ============== USER DIRECTORY ==============

class UserDirectory:
    """In-memory list of user records written through to a JSON array file"""

    def __init__(self, file_path):
        self.file_path = file_path
        self._lock = threading.RLock()
        users = load_json_file(file_path, [])
        if not isinstance(users, list):
            logger.warning("Ignoring user store %s: expected a JSON array", file_path)
            users = []
        self._users = []
        for user in users:
            if isinstance(user, dict):
                self._users.append(user)
            else:
                logger.warning("Skipping malformed user record %r", user)
        self._next_id = max((_int_id(u.get('id')) for u in self._users), default=0) + 1

    def __len__(self):
        return len(self._users)

    def all(self):
        return list(self._users)

    def find_by_id(self, user_id):
        user_id = str(user_id)
        for user in self._users:
            if user.get('id') == user_id:
                return user
        return None

    def get(self, user_id):
        """Like find_by_id but raises UserNotFound"""
        user = self.find_by_id(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def find_by_email(self, email):
        wanted = str(email or '').lower()
        for user in self._users:
            if str(user.get('email', '')).lower() == wanted:
                return user
        return None

    def insert(self, fields):
        """Store a new user; assigns id and timestamps and returns the record"""
        with self._lock:
            if self.find_by_email(fields.get('email')) is not None:
                raise DuplicateEmail(fields.get('email'))
            now = utc_now_iso()
            user = {
                'id': str(self._next_id),
                **fields,
                'createdAt': now,
                'updatedAt': now,
            }
            self._next_id += 1
            self._users.append(user)
            self.save()
            return user

    def update(self, user_id, fields):
        with self._lock:
            user = self.get(user_id)
            user.update(fields)
            user['updatedAt'] = utc_now_iso()
            self.save()
            return user

    def save(self):
        with self._lock:
            try:
                save_json_file(self.file_path, self._users)
            except StoreWriteFailure as e:
                logger.warning("Saving users failed: %s", e)


def _int_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def public_user(user):
    """User record without credentials"""
    return {k: v for k, v in user.items() if k != 'passwordHash'}

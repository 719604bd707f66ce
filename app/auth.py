"""
Authentication and table access.

SupabaseAuth talks to a real Supabase project. MockSupabaseAuth keeps users and
tables in one JSON file so the whole service runs offline in DEV_MODE. Both
expose the same table API used by debate.repository.
"""

import os
import json
import logging
import threading
import uuid
from functools import wraps
from typing import Optional, Dict, Any, Callable, List
from datetime import datetime, timezone

from flask import request, jsonify, g, current_app

from debate.schema import INSERT_TIMESTAMPS, check_columns, has_column

logger = logging.getLogger(__name__)

DEFAULT_ROLE = 'authenticated'
DEV_PASSWORD = 'password123'


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _claims(user_id: str, email: str, role: str = None) -> Dict[str, Any]:
    return {'sub': user_id, 'email': email, 'role': role or DEFAULT_ROLE}


class SupabaseAuth:
    """Supabase auth and table access."""

    def __init__(self, url: str, anon_key: str, service_role_key: str):
        # anon client checks user JWTs, service-role client owns the tables
        self.url = url
        self.client = None
        self.admin_client = None

        from supabase import create_client
        try:
            self.client = create_client(url, anon_key)
            self.admin_client = create_client(url, service_role_key)
        except Exception as e:
            logger.error(f"Supabase clients unavailable for {url}: {e}")
            return
        logger.info(f"Supabase clients ready for {url}")

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        if self.client is None:
            return None
        try:
            found = self.client.auth.get_user(token)
        except Exception as e:
            logger.warning(f"Supabase rejected token: {e}")
            return None
        if not found or not found.user:
            return None
        return _claims(found.user.id, found.user.email, found.user.role)

    def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        if self.admin_client is None:
            return None
        try:
            auth_user = self.admin_client.auth.admin.get_user_by_id(user_id).user
        except Exception as e:
            logger.error(f"Auth lookup for {user_id} failed: {e}")
            return None
        return {
            'id': auth_user.id,
            'email': auth_user.email,
            'created_at': str(auth_user.created_at),
            'metadata': auth_user.user_metadata
        }

    def _query(self, table: str, query, filters: Dict[str, Any] = None, in_filters: Dict[str, List[Any]] = None):
        for key, value in (filters or {}).items():
            query = query.eq(key, value)
        for key, values in (in_filters or {}).items():
            query = query.in_(key, list(values))
        return query

    def insert(self, table: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            if not self.admin_client:
                return None
            response = self.admin_client.table(table).insert(data).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error inserting into {table}: {e}")
            return None

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        try:
            if not self.admin_client or not rows:
                return []
            response = self.admin_client.table(table).insert(rows).execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error inserting into {table}: {e}")
            return []

    def upsert(self, table: str, data: Dict[str, Any], on_conflict: str) -> Optional[Dict[str, Any]]:
        try:
            if not self.admin_client:
                return None
            response = self.admin_client.table(table).upsert(data, on_conflict=on_conflict).execute()
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error upserting into {table}: {e}")
            return None

    def select(
        self,
        table: str,
        filters: Dict[str, Any] = None,
        order_by: str = None,
        desc: bool = False,
        limit: int = None,
        in_filters: Dict[str, List[Any]] = None
    ) -> List[Dict[str, Any]]:
        try:
            if not self.admin_client:
                return []
            query = self._query(table, self.admin_client.table(table).select('*'), filters, in_filters)
            if order_by:
                query = query.order(order_by, desc=desc)
            if limit:
                query = query.limit(limit)
            response = query.execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error selecting from {table}: {e}")
            return []

    def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None

    def update(self, table: str, filters: Dict[str, Any], updates: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            if not self.admin_client:
                return []
            # updated_at is maintained by database triggers where the column exists
            query = self._query(table, self.admin_client.table(table).update(updates), filters)
            response = query.execute()
            return response.data or []
        except Exception as e:
            logger.error(f"Error updating {table}: {e}")
            return []

    def delete(self, table: str, filters: Dict[str, Any]) -> bool:
        try:
            if not self.admin_client:
                return False
            self._query(table, self.admin_client.table(table).delete(), filters).execute()
            return True
        except Exception as e:
            logger.error(f"Error deleting from {table}: {e}")
            return False

    def count(self, table: str, filters: Dict[str, Any] = None, in_filters: Dict[str, List[Any]] = None) -> int:
        try:
            if not self.admin_client:
                return 0
            query = self._query(table, self.admin_client.table(table).select('id', count='exact'), filters, in_filters)
            response = query.execute()
            return response.count or 0
        except Exception as e:
            logger.error(f"Error counting {table}: {e}")
            return 0

    def log_event(self, event_data: Dict[str, Any]) -> Optional[str]:
        row = self.insert('events', event_data)
        return row.get('id') if row else None


class MockSupabaseAuth:
    """
    DEV_MODE stand-in for SupabaseAuth backed by storage/mock_db.json.

    Accepts the fixed 'test-token' and the 'local-<user id>' tokens handed out
    by login(). A default test user with the dev password is seeded on first use.

    Table names and columns are checked against debate.schema, so a write
    PostgREST would reject raises SchemaError here too.
    """

    DB_FILE = 'storage/mock_db.json'

    def __init__(self, db_file: str = None):
        self.db_file = db_file or self.DB_FILE
        self.users: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.RLock()

        self._load()
        if not self.users:
            self.users['test-user-id'] = {
                'id': 'test-user-id',
                'email': 'test@localhost',
                'password': DEV_PASSWORD,
                'role': DEFAULT_ROLE,
                'user_metadata': {'name': 'Dev User'}
            }
            self._save()
        logger.info(f"Local auth store at {self.db_file} ({len(self.users)} users)")

    def _load(self):
        if not os.path.exists(self.db_file):
            return
        try:
            with open(self.db_file, 'r') as f:
                snapshot = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Unreadable local store {self.db_file}: {e}")
            return
        self.users = snapshot.get('users', {})
        self.tables = snapshot.get('tables', {})

    def _save(self):
        with self._lock:
            directory = os.path.dirname(self.db_file)
            try:
                if directory:
                    os.makedirs(directory, exist_ok=True)
                with open(self.db_file, 'w') as f:
                    json.dump({'users': self.users, 'tables': self.tables}, f, indent=2, default=str)
            except OSError as e:
                logger.error(f"Could not write local store {self.db_file}: {e}")

    def reset(self):
        """Drop all table data but keep users."""
        with self._lock:
            self.tables = {}
            self._save()

    def _find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return next((u for u in self.users.values() if u['email'] == email), None)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        if token in self.tokens:
            return self.tokens[token]
        if token == 'test-token':
            return _claims('test-user-id', 'dev@example.com')
        if not token.startswith('local-'):
            logger.debug("Unrecognised local token")
            return None

        user_id = token[len('local-'):]
        # another worker may have registered the user since we loaded
        user = self.get_user_by_id(user_id)
        if user is None:
            self._load()
            user = self.get_user_by_id(user_id)
        if user is None:
            logger.warning(f"Token for unknown local user {user_id}")
            return None
        return _claims(user['id'], user['email'], user.get('role'))

    def login(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        user = self._find_by_email(email)
        if user is None or user.get('password') != password:
            logger.warning(f"Local login refused for {email}")
            return None

        token = f"local-{user['id']}"
        self.tokens[token] = _claims(user['id'], user['email'], user.get('role'))
        logger.info(f"Local login for {email}")
        return {
            'access_token': token,
            'token_type': 'bearer',
            'user': {k: v for k, v in user.items() if k != 'password'}
        }

    def reset_password_for_email(self, email: str) -> bool:
        """Reset a local user's password to the dev default."""
        user = self._find_by_email(email)
        if user is None:
            return False
        user['password'] = DEV_PASSWORD
        self._save()
        logger.info(f"Local password reset for {email}")
        return True

    def signup(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        if self._find_by_email(email):
            return {'error': 'User already exists'}

        user_id = str(uuid.uuid4())
        self.users[user_id] = {
            'id': user_id,
            'email': email,
            'password': password,
            'role': DEFAULT_ROLE,
            'created_at': _now(),
            'user_metadata': {}
        }
        self._save()
        logger.info(f"Local user {user_id} registered")
        return self.login(email, password)

    def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.users.get(user_id)

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, Any] = None, in_filters: Dict[str, List[Any]] = None) -> bool:
        for key, value in (filters or {}).items():
            if row.get(key) != value:
                return False
        for key, values in (in_filters or {}).items():
            if row.get(key) not in values:
                return False
        return True

    @staticmethod
    def _stamp_update(table: str, row: Dict[str, Any]) -> None:
        if has_column(table, 'updated_at'):
            row['updated_at'] = _now()

    def insert(self, table: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        check_columns(table, data)
        now = _now()
        row = {'id': str(uuid.uuid4())}
        row.update({column: now for column in INSERT_TIMESTAMPS if has_column(table, column)})
        row.update(data)
        with self._lock:
            self.tables.setdefault(table, []).append(row)
            self._save()
        logger.debug(f"[MOCK] Inserted into {table}: {row['id']}")
        return dict(row)

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.insert(table, row) for row in rows]

    def upsert(self, table: str, data: Dict[str, Any], on_conflict: str) -> Optional[Dict[str, Any]]:
        check_columns(table, [*data, on_conflict])
        with self._lock:
            for row in self.tables.get(table, []):
                if row.get(on_conflict) == data.get(on_conflict):
                    row.update(data)
                    self._stamp_update(table, row)
                    self._save()
                    return dict(row)
            return self.insert(table, data)

    def select(
        self,
        table: str,
        filters: Dict[str, Any] = None,
        order_by: str = None,
        desc: bool = False,
        limit: int = None,
        in_filters: Dict[str, List[Any]] = None
    ) -> List[Dict[str, Any]]:
        check_columns(table, [*(filters or {}), *(in_filters or {}), *([order_by] if order_by else [])])
        with self._lock:
            rows = [dict(r) for r in self.tables.get(table, []) if self._matches(r, filters, in_filters)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or ''), reverse=desc)
        if limit:
            rows = rows[:limit]
        return rows

    def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None

    def update(self, table: str, filters: Dict[str, Any], updates: Dict[str, Any]) -> List[Dict[str, Any]]:
        check_columns(table, [*filters, *updates])
        updated = []
        with self._lock:
            for row in self.tables.get(table, []):
                if self._matches(row, filters):
                    row.update(updates)
                    self._stamp_update(table, row)
                    updated.append(dict(row))
            if updated:
                self._save()
        return updated

    def delete(self, table: str, filters: Dict[str, Any]) -> bool:
        check_columns(table, filters)
        with self._lock:
            rows = self.tables.get(table, [])
            self.tables[table] = [r for r in rows if not self._matches(r, filters)]
            self._save()
        return True

    def count(self, table: str, filters: Dict[str, Any] = None, in_filters: Dict[str, List[Any]] = None) -> int:
        return len(self.select(table, filters, in_filters=in_filters))

    def log_event(self, event_data: Dict[str, Any]) -> Optional[str]:
        row = self.insert('events', event_data)
        logger.debug(f"[MOCK] Logged event: {event_data.get('event_type')}")
        return row['id']


def _auth_failure(message: str, code: str):
    return jsonify({'error': message, 'code': code}), 401


def require_auth(f: Callable) -> Callable:
    """Reject the request unless it carries a valid Bearer token; sets g.user_id."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        header = request.headers.get('Authorization')
        if not header:
            return _auth_failure('Missing Authorization header', 'AUTH_MISSING')

        scheme, _, token = header.partition(' ')
        if scheme.lower() != 'bearer' or not token or ' ' in token:
            return _auth_failure('Invalid Authorization header format', 'AUTH_INVALID_FORMAT')

        claims = current_app.supabase_auth.verify_token(token)
        if not claims:
            return _auth_failure('Invalid or expired token', 'AUTH_INVALID_TOKEN')

        g.user_id = claims.get('sub')
        g.user_email = claims.get('email')
        g.user_role = claims.get('role', DEFAULT_ROLE)
        return f(*args, **kwargs)

    return wrapper

import copy
import os
import re
import sys
import threading
from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

# Ensure 'lambda' and the shared layer are on sys.path so tests can import the packages
base = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
for p in (base, os.path.join(base, 'python')):
    if p not in sys.path:
        sys.path.insert(0, p)

from common import dynamo  # noqa: E402

_MISSING = object()
_CLAUSE = re.compile(r'\b(SET|REMOVE|ADD)\b')


def _condition_failed(op):
    return ClientError(
        {'Error': {'Code': 'ConditionalCheckFailedException', 'Message': 'The conditional request failed'}},
        op,
    )


def _reject_floats(value):
    # boto3's serializer refuses Python floats; keep the fake just as strict
    if isinstance(value, float):
        raise TypeError('Float types are not supported. Use Decimal types instead.')
    if isinstance(value, dict):
        for v in value.values():
            _reject_floats(v)
    elif isinstance(value, (list, tuple, set)):
        for v in value:
            _reject_floats(v)


def _lookup(item, dotted):
    cur = item
    for part in dotted.split('.'):
        if not isinstance(cur, dict) or part not in cur:
            return _MISSING
        cur = cur[part]
    return cur


def evaluate(cond, item):
    """Evaluate a boto3.dynamodb.conditions expression against a plain dict."""
    if cond is None:
        return True
    op = type(cond).__name__
    vals = cond._values
    if op == 'And':
        return evaluate(vals[0], item) and evaluate(vals[1], item)
    if op == 'Or':
        return evaluate(vals[0], item) or evaluate(vals[1], item)
    if op == 'Not':
        return not evaluate(vals[0], item)
    left = _lookup(item, vals[0].name)
    if op == 'AttributeExists':
        return left is not _MISSING
    if op == 'AttributeNotExists':
        return left is _MISSING
    if left is _MISSING:
        return False
    if op == 'Equals':
        return left == vals[1]
    if op == 'NotEquals':
        return left != vals[1]
    if op == 'In':
        return left in vals[1]
    if op == 'LessThan':
        return left < vals[1]
    if op == 'LessThanEquals':
        return left <= vals[1]
    if op == 'GreaterThan':
        return left > vals[1]
    if op == 'GreaterThanEquals':
        return left >= vals[1]
    if op == 'Between':
        return vals[1] <= left <= vals[2]
    if op == 'BeginsWith':
        return str(left).startswith(vals[1])
    if op == 'Contains':
        return vals[1] in left
    raise NotImplementedError(op)


def _path(raw, names):
    return [names.get(p, p) if p.startswith('#') else p for p in raw.strip().split('.')]


def _set_path(item, parts, value):
    cur = item
    for p in parts[:-1]:
        cur = cur.setdefault(p, {})
    cur[parts[-1]] = value


def _remove_path(item, parts):
    cur = item
    for p in parts[:-1]:
        cur = cur.get(p) or {}
    cur.pop(parts[-1], None)


def apply_update(item, expression, names, values):
    """Apply a SET/REMOVE/ADD update expression in place; returns the touched top-level attributes."""
    touched = []
    tokens = _CLAUSE.split(expression)
    for i in range(1, len(tokens), 2):
        keyword, body = tokens[i], tokens[i + 1]
        for action in (a.strip() for a in body.split(',')):
            if not action:
                continue
            if keyword == 'SET':
                raw_path, raw_val = action.split('=', 1)
                parts = _path(raw_path, names)
                _set_path(item, parts, copy.deepcopy(values[raw_val.strip()]))
            elif keyword == 'REMOVE':
                parts = _path(action, names)
                _remove_path(item, parts)
            else:
                raw_path, raw_val = action.split()
                parts = _path(raw_path, names)
                current = _lookup(item, '.'.join(parts))
                base_val = 0 if current is _MISSING else current
                _set_path(item, parts, base_val + values[raw_val.strip()])
            touched.append(parts[0])
    return touched


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB Table with conditional writes."""

    def __init__(self, name, key='id'):
        self.name = name
        self.key = key
        self.items = {}
        self.page_size = None
        self.before_update = None
        self.update_calls = 0
        self._lock = threading.RLock()

    def _k(self, key):
        return key[self.key]

    def seed(self, *items):
        for it in items:
            self.items[it[self.key]] = copy.deepcopy(it)

    def get_item(self, Key, **kwargs):
        with self._lock:
            it = self.items.get(self._k(Key))
            return {'Item': copy.deepcopy(it)} if it is not None else {}

    def put_item(self, Item, ConditionExpression=None, **kwargs):
        _reject_floats(Item)
        with self._lock:
            existing = self.items.get(Item[self.key]) or {}
            if not evaluate(ConditionExpression, existing):
                raise _condition_failed('PutItem')
            self.items[Item[self.key]] = copy.deepcopy(Item)
        return {}

    def update_item(self, Key, UpdateExpression, ConditionExpression=None, ExpressionAttributeNames=None,
                    ExpressionAttributeValues=None, ReturnValues='NONE', **kwargs):
        hook, self.before_update = self.before_update, None
        if hook:
            hook()
        _reject_floats(ExpressionAttributeValues or {})
        with self._lock:
            self.update_calls += 1
            k = self._k(Key)
            old = self.items.get(k)
            if not evaluate(ConditionExpression, old or {}):
                raise _condition_failed('UpdateItem')
            new = copy.deepcopy(old) if old is not None else dict(Key)
            touched = apply_update(new, UpdateExpression, ExpressionAttributeNames or {}, ExpressionAttributeValues or {})
            self.items[k] = new
            if ReturnValues == 'ALL_NEW':
                return {'Attributes': copy.deepcopy(new)}
            if ReturnValues == 'ALL_OLD':
                return {'Attributes': copy.deepcopy(old)} if old is not None else {}
            if ReturnValues == 'UPDATED_NEW':
                return {'Attributes': {a: copy.deepcopy(new[a]) for a in touched if a in new}}
            return {}

    def delete_item(self, Key, ConditionExpression=None, **kwargs):
        with self._lock:
            k = self._k(Key)
            if not evaluate(ConditionExpression, self.items.get(k) or {}):
                raise _condition_failed('DeleteItem')
            self.items.pop(k, None)
        return {}

    def _page(self, rows, start_key):
        rows = sorted(rows, key=lambda r: str(r[self.key]))
        if start_key is not None:
            rows = [r for r in rows if str(r[self.key]) > str(start_key[self.key])]
        if self.page_size and len(rows) > self.page_size:
            page = rows[:self.page_size]
            return {'Items': copy.deepcopy(page), 'LastEvaluatedKey': {self.key: page[-1][self.key]}}
        return {'Items': copy.deepcopy(rows)}

    def query(self, KeyConditionExpression, IndexName=None, FilterExpression=None, ExclusiveStartKey=None, **kwargs):
        with self._lock:
            rows = [it for it in self.items.values() if evaluate(KeyConditionExpression, it)]
            rows = [it for it in rows if evaluate(FilterExpression, it)]
            return self._page(rows, ExclusiveStartKey)

    def scan(self, FilterExpression=None, ExclusiveStartKey=None, **kwargs):
        with self._lock:
            rows = [it for it in self.items.values() if evaluate(FilterExpression, it)]
            return self._page(rows, ExclusiveStartKey)


class _FakeClient:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class _FakeMeta:
    def __init__(self):
        self.client = _FakeClient()


class FakeResource:
    _KEYS = {'InspectionRequestIds': 'requestId', 'Counters': 'name'}

    def __init__(self):
        self.tables = {}
        self.meta = _FakeMeta()

    def Table(self, name):
        if name not in self.tables:
            self.tables[name] = FakeTable(name, key=self._KEYS.get(name, 'id'))
        return self.tables[name]


@pytest.fixture
def fake_db(monkeypatch):
    resource = FakeResource()
    monkeypatch.setattr(dynamo, 'get_dynamodb', lambda: resource)
    return resource


ADMIN = {'id': 'user_admin', 'role': 'admin'}
OWNER = {'id': 'user_owner', 'role': 'user'}


def make_user(fake_db, user_id, role='user', status='active', **extra):
    item = {
        'id': user_id,
        'email': f'{user_id}@example.com',
        'firstName': user_id,
        'lastName': 'Test',
        'role': role,
        'status': status,
        'is_assigned': False,
        'createdAt': '2026-01-01T00:00:00+08:00',
    }
    item.update(extra)
    fake_db.Table('Users').seed(item)
    return item


def _sequence_of(request_id):
    m = re.search(r'(\d+)$', request_id)
    return m.group(1).zfill(3) if m else '000'


def make_request(fake_db, request_id='request_1', status='pending', user_id='user_owner', **extra):
    item = {
        'id': request_id,
        'requestId': f'CAMRY_TOY_{_sequence_of(request_id)}',
        'userId': user_id,
        'requestType': 'car inspection',
        'vehicleInfo': {'make': 'Toyota', 'model': 'Camry', 'year': 2022},
        'location': {},
        'status': status,
        'createdAt': '2026-01-01T00:00:00+08:00',
        'updatedAt': '2026-01-01T00:00:00+08:00',
    }
    item.update(extra)
    fake_db.Table('InspectionRequests').seed(item)
    return item


def user_row(fake_db, user_id):
    return fake_db.Table('Users').items[user_id]


def request_row(fake_db, request_id):
    return fake_db.Table('InspectionRequests').items[request_id]


@pytest.fixture
def actors():
    return {'admin': dict(ADMIN), 'owner': dict(OWNER)}

"""Process-wide DynamoDB handle and value conversion helpers.

A warm Lambda container keeps module state between invocations, so the boto3
resource is created on first use and reused afterwards. Before each reuse the
handle is checked: if it was closed, or the container sat idle long enough for
pooled connections to be torn down, a fresh resource is built.
"""

import time
from decimal import Decimal

import boto3
from botocore.exceptions import ClientError

from . import config

_handle = None
_last_used = 0.0


def _is_live(now):
    if _handle is None:
        return False
    return (now - _last_used) < config.DB_IDLE_TIMEOUT_SECONDS


def get_dynamodb():
    global _handle, _last_used
    now = time.monotonic()
    if not _is_live(now):
        if _handle is not None:
            close_dynamodb()
        _handle = boto3.resource('dynamodb', region_name=config.REGION)
    _last_used = now
    return _handle


def close_dynamodb():
    global _handle
    handle, _handle = _handle, None
    if handle is None:
        return
    try:
        handle.meta.client.close()
    except AttributeError:
        # older botocore clients have no close()
        pass


def table(name):
    return get_dynamodb().Table(name)


def to_dynamo(obj):
    """Recursively convert floats to Decimal; DynamoDB rejects Python floats."""
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, list):
        return [to_dynamo(v) for v in obj]
    if isinstance(obj, dict):
        return {k: to_dynamo(v) for k, v in obj.items()}
    return obj


def convert_decimals(obj):
    """Recursively convert DynamoDB Decimal types to int/float for JSON serialization."""
    if isinstance(obj, list):
        return [convert_decimals(item) for item in obj]
    elif isinstance(obj, dict):
        return {key: convert_decimals(val) for key, val in obj.items()}
    elif isinstance(obj, Decimal):
        # Convert to int if no decimal places, otherwise float
        return int(obj) if obj % 1 == 0 else float(obj)
    else:
        return obj


def is_condition_failure(exc):
    if not isinstance(exc, ClientError):
        return False
    return exc.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


def query_all(tbl, **kwargs):
    """Run a query and follow LastEvaluatedKey until exhausted."""
    resp = tbl.query(**kwargs)
    items = resp.get('Items', [])
    while 'LastEvaluatedKey' in resp:
        resp = tbl.query(ExclusiveStartKey=resp['LastEvaluatedKey'], **kwargs)
        items.extend(resp.get('Items', []) or [])
    return items


def scan_all(tbl, **kwargs):
    resp = tbl.scan(**kwargs)
    items = resp.get('Items', [])
    while 'LastEvaluatedKey' in resp:
        resp = tbl.scan(ExclusiveStartKey=resp['LastEvaluatedKey'], **kwargs)
        items.extend(resp.get('Items', []) or [])
    return items

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from . import config
from .dynamo import table, is_condition_failure
from .errors import InvalidState
from .responses import _now_local_iso


def increment_and_get(counter_name: str) -> int:
    """Atomically add one to the named counter and return the new value.

    ADD on a missing item creates it with the increment, so the first call yields 1.
    """
    resp = table(config.COUNTERS_TABLE).update_item(
        Key={'name': counter_name},
        UpdateExpression='ADD #seq :one SET updatedAt = :u',
        ExpressionAttributeNames={'#seq': 'sequence'},
        ExpressionAttributeValues={':one': 1, ':u': _now_local_iso()},
        ReturnValues='UPDATED_NEW',
    )
    return int(resp['Attributes']['sequence'])


def get_current_sequence(counter_name: str) -> int:
    resp = table(config.COUNTERS_TABLE).get_item(Key={'name': counter_name})
    item = resp.get('Item')
    return int(item.get('sequence') or 0) if item else 0


def initialize_counter(counter_name: str, starting_value: int = 0, debug=None) -> int:
    """Create the counter at `starting_value` unless it already exists; returns the current value."""
    now = _now_local_iso()
    try:
        table(config.COUNTERS_TABLE).put_item(
            Item={'name': counter_name, 'sequence': starting_value, 'createdAt': now, 'updatedAt': now},
            ConditionExpression=Attr('name').not_exists(),
        )
        if debug:
            debug(f'initialize_counter: created {counter_name} at {starting_value}')
        return starting_value
    except ClientError as e:
        if not is_condition_failure(e):
            raise
    current = get_current_sequence(counter_name)
    if debug:
        debug(f'initialize_counter: {counter_name} already exists at {current}')
    return current


def reset_counter(counter_name: str, value: int = 0) -> int:
    """Move the counter forward to `value`.

    Moving it backwards is refused: issued request ids are reserved, so every
    lower sequence would collide and creation gives up after
    REQUEST_ID_MAX_ATTEMPTS collisions.
    """
    try:
        table(config.COUNTERS_TABLE).update_item(
            Key={'name': counter_name},
            UpdateExpression='SET #seq = :v, updatedAt = :u',
            ConditionExpression=Attr('sequence').not_exists() | Attr('sequence').lte(value),
            ExpressionAttributeNames={'#seq': 'sequence'},
            ExpressionAttributeValues={':v': value, ':u': _now_local_iso()},
        )
    except ClientError as e:
        if not is_condition_failure(e):
            raise
        current = get_current_sequence(counter_name)
        raise InvalidState(
            f'Counter {counter_name} is at {current}; it cannot be moved back to {value}',
            currentSequence=current,
        )
    return value

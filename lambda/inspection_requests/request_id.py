"""Human readable request ids: {MODEL}_{MAKE3}_{SEQ3}, e.g. CAMRY_TOY_001.

The sequence comes from one global atomic counter (not per make). Each issued
id is then claimed in the request-id table with a conditional put, so an id is
never handed out twice even if the counter were reset by an operator.
"""

import re

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from common import config
from common.counters import increment_and_get
from common.dynamo import table, is_condition_failure
from common.errors import Conflict
from common.responses import _now_local_iso

_NON_ALNUM = re.compile(r'[^A-Z0-9]')


def _model_part(vehicle_info):
    model = str((vehicle_info or {}).get('model') or 'UNK').upper()
    return _NON_ALNUM.sub('', model)[:20] or 'UNK'


def _make_part(vehicle_info):
    make = str((vehicle_info or {}).get('make') or 'UNK').upper()
    make = _NON_ALNUM.sub('', make) or 'UNK'
    return make[:3].ljust(3, 'X')


def format_request_id(sequence, vehicle_info):
    return f'{_model_part(vehicle_info)}_{_make_part(vehicle_info)}_{int(sequence):03d}'


def next_request_id(vehicle_info):
    return format_request_id(increment_and_get(config.REQUEST_COUNTER_NAME), vehicle_info)


def claim_request_id(vehicle_info, internal_id, debug=None):
    """Issue a request id and reserve it for `internal_id`.

    A collision on the reservation draws a fresh sequence number; after
    REQUEST_ID_MAX_ATTEMPTS collisions the creation fails with Conflict.
    Ids drawn but not used are skipped, never reissued.
    """
    ids_table = table(config.REQUEST_IDS_TABLE)
    last = None
    for attempt in range(1, config.REQUEST_ID_MAX_ATTEMPTS + 1):
        sequence = increment_and_get(config.REQUEST_COUNTER_NAME)
        request_id = format_request_id(sequence, vehicle_info)
        try:
            ids_table.put_item(
                Item={
                    'requestId': request_id,
                    'requestInternalId': internal_id,
                    'sequence': sequence,
                    'createdAt': _now_local_iso(),
                },
                ConditionExpression=Attr('requestId').not_exists(),
            )
        except ClientError as e:
            if not is_condition_failure(e):
                raise
            last = request_id
            if debug:
                debug(f'claim_request_id: {request_id} already taken (attempt {attempt})')
            continue
        if debug:
            debug(f'claim_request_id: issued {request_id} for {internal_id}')
        return request_id
    raise Conflict(
        f'Could not generate a unique request id after {config.REQUEST_ID_MAX_ATTEMPTS} attempts',
        lastRequestId=last,
    )

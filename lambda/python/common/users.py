"""Identity & role store (Users table).

Inspector availability is an `is_assigned` flag plus `assignedRequestId`, the
request currently holding it. Both are only ever changed through conditional
update_item calls so two admins racing on the same inspector cannot leave the
flag pointing at a request that no longer holds it.
"""

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from . import config
from .dynamo import table, is_condition_failure, scan_all
from .errors import InvalidState, NotFound
from .ids import new_id
from .pagination import paginate
from .responses import _now_local_iso

ROLE_ADMIN = 'admin'
ROLE_INSPECTOR = 'inspector'
ROLE_USER = 'user'

STATUS_ACTIVE = 'active'
STATUS_INACTIVE = 'inactive'
STATUS_BLOCKED = 'blocked'

PUBLIC_FIELDS = ('id', 'email', 'firstName', 'lastName', 'phone', 'role', 'status')


def public_user(user):
    if not user:
        return None
    return {k: user.get(k) for k in PUBLIC_FIELDS}


def find_user_by_id(user_id):
    resp = table(config.USERS_TABLE).get_item(Key={'id': user_id})
    return resp.get('Item')


def find_user_by_email(email):
    email = (email or '').strip().lower()
    if not email:
        return None
    resp = table(config.USERS_TABLE).query(
        IndexName=config.USERS_EMAIL_INDEX,
        KeyConditionExpression=Key('email').eq(email),
    )
    items = resp.get('Items', [])
    return items[0] if items else None


def create_user(email, first_name=None, last_name=None, phone=None, role=ROLE_USER, status=STATUS_INACTIVE):
    now = _now_local_iso()
    item = {
        'id': new_id('user'),
        'email': email.strip().lower(),
        'firstName': first_name or 'Guest',
        'lastName': last_name or 'User',
        'phone': phone or None,
        'role': role,
        'status': status,
        'is_assigned': False,
        'otpVerified': False,
        'createdAt': now,
        'updatedAt': now,
    }
    table(config.USERS_TABLE).put_item(Item=item, ConditionExpression=Attr('id').not_exists())
    return item


def fill_missing_profile(user, first_name=None, last_name=None, phone=None, debug=None):
    """Copy profile fields from an intake form onto the user, only where the user has none."""
    updates = {}
    if first_name and not user.get('firstName'):
        updates['firstName'] = first_name
    if last_name and not user.get('lastName'):
        updates['lastName'] = last_name
    if phone and not user.get('phone'):
        updates['phone'] = phone
    if not updates:
        return user

    parts = []
    vals = {':u': _now_local_iso()}
    for i, (k, v) in enumerate(updates.items()):
        parts.append(f'{k} = :p{i}')
        vals[f':p{i}'] = v
    resp = table(config.USERS_TABLE).update_item(
        Key={'id': user['id']},
        UpdateExpression='SET ' + ', '.join(parts + ['updatedAt = :u']),
        ExpressionAttributeValues=vals,
        ConditionExpression=Attr('id').exists(),
        ReturnValues='ALL_NEW',
    )
    if debug:
        debug(f"fill_missing_profile: user={user['id']} updated fields={sorted(updates)}")
    return resp.get('Attributes') or {**user, **updates}


def mark_inspector_busy(inspector_id, request_id):
    """Atomically claim the inspector's availability flag for `request_id`.

    Succeeds when the user is an active inspector whose flag is free or already
    held by the same request. Returns the item as it was before the update.
    """
    condition = (
        Attr('id').exists()
        & Attr('role').eq(ROLE_INSPECTOR)
        & Attr('status').eq(STATUS_ACTIVE)
        & (Attr('is_assigned').not_exists() | Attr('is_assigned').eq(False) | Attr('assignedRequestId').eq(request_id))
    )
    try:
        resp = table(config.USERS_TABLE).update_item(
            Key={'id': inspector_id},
            UpdateExpression='SET is_assigned = :t, assignedRequestId = :rid, updatedAt = :u',
            ExpressionAttributeValues={':t': True, ':rid': request_id, ':u': _now_local_iso()},
            ConditionExpression=condition,
            ReturnValues='ALL_OLD',
        )
    except ClientError as e:
        if not is_condition_failure(e):
            raise
        raise _explain_unavailable(inspector_id, request_id)
    return resp.get('Attributes') or {}


def _explain_unavailable(inspector_id, request_id):
    user = find_user_by_id(inspector_id)
    if not user:
        return NotFound('Inspector not found', inspectorId=inspector_id)
    if user.get('role') != ROLE_INSPECTOR:
        return InvalidState('Selected user is not an inspector', inspectorId=inspector_id)
    if user.get('status') != STATUS_ACTIVE:
        return InvalidState(
            f"Inspector is not active and cannot be assigned. Current status: {user.get('status')}",
            inspectorId=inspector_id,
        )
    return InvalidState(
        'Inspector is already assigned to another request',
        inspectorId=inspector_id,
        assignedRequestId=user.get('assignedRequestId'),
    )


def release_inspector(inspector_id, request_id, debug=None):
    """Free the inspector's flag if `request_id` holds it. Returns True when cleared.

    Not holding the flag is not an error: a concurrent reassignment may already
    have released it, or handed it to another request.
    """
    if not inspector_id:
        return False
    condition = Attr('id').exists() & (
        Attr('assignedRequestId').eq(request_id) | Attr('assignedRequestId').not_exists()
    )
    try:
        table(config.USERS_TABLE).update_item(
            Key={'id': inspector_id},
            UpdateExpression='SET is_assigned = :f, updatedAt = :u REMOVE assignedRequestId',
            ExpressionAttributeValues={':f': False, ':u': _now_local_iso()},
            ConditionExpression=condition,
        )
    except ClientError as e:
        if not is_condition_failure(e):
            raise
        if debug:
            debug(f'release_inspector: inspector={inspector_id} not held by request={request_id}, left unchanged')
        return False
    if debug:
        debug(f'release_inspector: inspector={inspector_id} freed from request={request_id}')
    return True


def list_available_inspectors(page=1, limit=50, available_status=None):
    filt = (
        Attr('role').eq(ROLE_INSPECTOR)
        & Attr('status').eq(STATUS_ACTIVE)
        & (Attr('is_assigned').not_exists() | Attr('is_assigned').eq(False))
    )
    if available_status:
        filt = filt & Attr('availableStatus').eq(available_status)
    items = scan_all(table(config.USERS_TABLE), FilterExpression=filt)
    items = sorted(items, key=lambda u: ((u.get('firstName') or '').lower(), (u.get('lastName') or '').lower()))
    rows, pagination = paginate(items, page, limit)
    inspectors = []
    for u in rows:
        row = public_user(u)
        row['availableStatus'] = u.get('availableStatus')
        inspectors.append(row)
    return {'inspectors': inspectors, 'pagination': pagination}

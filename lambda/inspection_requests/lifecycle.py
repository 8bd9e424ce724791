"""Inspection request state machine.

    pending -> assigned -> in_progress -> completed
    pending | assigned | in_progress -> cancelled

completed and cancelled are terminal. Every transition is one conditional
update_item keyed on the status the transition expects, so a concurrent change
makes the write fail instead of being overwritten. After a failed write the
request is re-read only to build the error message.
"""

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from common import config
from common.dynamo import table, to_dynamo, is_condition_failure, scan_all
from common.errors import Forbidden, InvalidState, NotFound, invalid_transition
from common.ids import new_id
from common.responses import _now_local_iso, parse_iso
from common import users
from schemas.db import AssignInspectorPayload, CreateRequestPayload, RejectPayload, UpdateRequestPayload, validate_payload

from .request_id import claim_request_id
from .summary import expand_request

STATUS_PENDING = 'pending'
STATUS_ASSIGNED = 'assigned'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'

OPEN_STATUSES = (STATUS_PENDING, STATUS_ASSIGNED, STATUS_IN_PROGRESS)
STARTABLE_STATUSES = (STATUS_PENDING, STATUS_ASSIGNED)
SUBMITTED_INSPECTION_STATUSES = ('completed', 'submitted')

_STATUS_NAME = {'#status': 'status'}


def _requests():
    return table(config.REQUESTS_TABLE)


def _is_admin(actor):
    return bool(actor) and actor.get('role') == users.ROLE_ADMIN


def _require_admin(actor, message):
    if not _is_admin(actor):
        raise Forbidden(message)


def find_request(request_id):
    if not request_id:
        return None
    resp = _requests().get_item(Key={'id': request_id})
    return resp.get('Item')


def load_request(request_id):
    req = find_request(request_id)
    if not req:
        raise NotFound('Inspection request not found', id=request_id)
    return req


def _conditional_update(request_id, update_expression, values, condition, return_values='ALL_NEW', names=None):
    """Apply one guarded update. Returns the ReturnValues attributes, or None if the guard failed."""
    kwargs = {
        'Key': {'id': request_id},
        'UpdateExpression': update_expression,
        'ConditionExpression': Attr('id').exists() & condition,
        'ExpressionAttributeValues': to_dynamo(values),
        'ReturnValues': return_values,
    }
    if names:
        kwargs['ExpressionAttributeNames'] = names
    try:
        resp = _requests().update_item(**kwargs)
    except ClientError as e:
        if not is_condition_failure(e):
            raise
        return None
    return resp.get('Attributes') or {}


def _raise_lost_race(request_id, action, expected):
    current = load_request(request_id)
    raise invalid_transition(action, current.get('status'), expected)


# create ---------------------------------------------------------------------

def create_request(payload, debug=None):
    """Public intake: resolve or auto-create the requester, issue a request id and store the request."""
    data = validate_payload(CreateRequestPayload, payload, debug)

    user = users.find_user_by_email(data.email)
    if user and user.get('status') == users.STATUS_BLOCKED:
        raise Forbidden('Your account has been blocked. Please contact administrator.')
    if not user:
        user = users.create_user(data.email, data.firstName, data.lastName, data.phone)
        if debug:
            debug(f"create_request: auto-created user={user['id']} for {data.email}")
    else:
        user = users.fill_missing_profile(user, data.firstName, data.lastName, data.phone, debug=debug)

    dumped = data.model_dump(mode='json')
    internal_id = new_id('request')
    request_id = claim_request_id(dumped['vehicleInfo'], internal_id, debug=debug)

    now = _now_local_iso()
    item = {
        'id': internal_id,
        'requestId': request_id,
        'userId': user['id'],
        'requestType': data.requestType,
        'vehicleInfo': {k: v for k, v in dumped['vehicleInfo'].items() if v is not None},
        'reason': '',
        'preferredDate': dumped.get('preferredDate'),
        'preferredTime': data.preferredTime or '',
        'location': {k: v for k, v in (dumped.get('location') or {}).items() if v is not None},
        'notes': data.notes or '',
        'status': STATUS_PENDING,
        'createdAt': now,
        'updatedAt': now,
    }
    _requests().put_item(Item=to_dynamo(item), ConditionExpression=Attr('id').not_exists())
    if debug:
        debug(f"create_request: stored {internal_id} as {request_id} for user={user['id']}")
    item['requester'] = users.public_user(user)
    return item


# owner edits ----------------------------------------------------------------

def update_request(request_id, payload, actor, debug=None):
    """Partial edit by the owner or an admin, only while the request is pending."""
    data = validate_payload(UpdateRequestPayload, payload, debug)
    req = load_request(request_id)
    if not _is_admin(actor) and req.get('userId') != (actor or {}).get('id'):
        raise Forbidden('You can only edit your own inspection requests')
    if req.get('status') != STATUS_PENDING:
        raise invalid_transition('edited', req.get('status'), STATUS_PENDING)

    changes = data.model_dump(mode='json', exclude_unset=True)
    parts = ['updatedAt = :u']
    names = {}
    values = {':u': _now_local_iso()}
    n = 0
    for field in ('requestType', 'preferredDate', 'preferredTime', 'notes', 'reason'):
        if field in changes:
            parts.append(f'{field} = :v{n}')
            values[f':v{n}'] = changes[field] if changes[field] is not None else ''
            n += 1
    # nested maps are patched key by key so concurrent edits to other keys survive
    for group in ('vehicleInfo', 'location'):
        patch = changes.get(group) or {}
        if not patch:
            continue
        names['#' + group] = group
        if group not in req:
            parts.append(f'#{group} = :v{n}')
            values[f':v{n}'] = patch
            n += 1
            continue
        for key, val in patch.items():
            names[f'#k{n}'] = key
            parts.append(f'#{group}.#k{n} = :v{n}')
            values[f':v{n}'] = val
            n += 1

    updated = _conditional_update(
        request_id,
        'SET ' + ', '.join(parts),
        values,
        Attr('status').eq(STATUS_PENDING),
        names=names,
    )
    if updated is None:
        _raise_lost_race(request_id, 'edited', STATUS_PENDING)
    if debug:
        debug(f'update_request: {request_id} fields={sorted(changes)}')
    return updated


# admin actions --------------------------------------------------------------

def assign_inspector(request_id, payload, actor, debug=None):
    """Assign or reassign the inspector on an open request.

    The new inspector's flag is claimed first. The request update then reports
    the inspector it displaced (ALL_OLD), who is released only if the flag is
    still held for this request. If the request update loses to a concurrent
    terminal transition, the newly claimed flag is handed back.
    """
    _require_admin(actor, 'Only admins can assign inspectors to requests')
    if isinstance(payload, str):
        payload = {'inspectorId': payload}
    inspector_id = validate_payload(AssignInspectorPayload, payload, debug).inspectorId

    req = load_request(request_id)
    if req.get('status') not in OPEN_STATUSES:
        raise invalid_transition('assigned', req.get('status'), OPEN_STATUSES)

    prior = users.mark_inspector_busy(inspector_id, request_id)
    already_held = bool(prior.get('is_assigned')) and prior.get('assignedRequestId') == request_id

    now = _now_local_iso()
    values = {':i': inspector_id, ':now': now}
    # pending advances to assigned; a reassignment never regresses status
    old = _conditional_update(
        request_id,
        'SET assignedInspectorId = :i, assignedAt = :now, updatedAt = :now, #status = :assigned',
        {**values, ':assigned': STATUS_ASSIGNED},
        Attr('status').eq(STATUS_PENDING),
        return_values='ALL_OLD',
        names=_STATUS_NAME,
    )
    new_status = STATUS_ASSIGNED
    if old is None:
        old = _conditional_update(
            request_id,
            'SET assignedInspectorId = :i, assignedAt = :now, updatedAt = :now',
            values,
            Attr('status').is_in([STATUS_ASSIGNED, STATUS_IN_PROGRESS]),
            return_values='ALL_OLD',
        )
        new_status = None

    if old is None:
        if not already_held:
            users.release_inspector(inspector_id, request_id, debug=debug)
        _raise_lost_race(request_id, 'assigned', OPEN_STATUSES)

    previous = old.get('assignedInspectorId')
    if previous and previous != inspector_id:
        users.release_inspector(previous, request_id, debug=debug)

    updated = dict(old)
    updated.update({'assignedInspectorId': inspector_id, 'assignedAt': now, 'updatedAt': now})
    if new_status:
        updated['status'] = new_status
    if debug:
        debug(f'assign_inspector: {request_id} inspector={inspector_id} previous={previous} status={updated["status"]}')
    return updated


def approve_request(request_id, actor, debug=None):
    """Record admin approval. Approval is an audit marker and does not move the status."""
    _require_admin(actor, 'Only admins can approve inspection requests')
    req = load_request(request_id)
    if req.get('status') != STATUS_PENDING:
        raise invalid_transition('approved', req.get('status'), STATUS_PENDING)
    if req.get('adminApprovedAt'):
        raise InvalidState('Request has already been approved', adminApprovedAt=req.get('adminApprovedAt'))

    now = _now_local_iso()
    updated = _conditional_update(
        request_id,
        'SET adminApprovedAt = :now, adminApprovedBy = :by, updatedAt = :now',
        {':now': now, ':by': actor['id']},
        Attr('status').eq(STATUS_PENDING) & Attr('adminApprovedAt').not_exists(),
    )
    if updated is None:
        current = load_request(request_id)
        if current.get('status') == STATUS_PENDING:
            raise InvalidState('Request has already been approved', adminApprovedAt=current.get('adminApprovedAt'))
        raise invalid_transition('approved', current.get('status'), STATUS_PENDING)
    if debug:
        debug(f'approve_request: {request_id} approved by {actor["id"]}')
    return updated


def _check_rejectable(status):
    if status == STATUS_CANCELLED:
        raise InvalidState('Request is already cancelled', currentStatus=status)
    if status not in OPEN_STATUSES:
        raise invalid_transition('rejected', status, OPEN_STATUSES)


def reject_request(request_id, payload, actor, debug=None):
    """Cancel an open request and free its inspector."""
    _require_admin(actor, 'Only admins can reject inspection requests')
    if payload is None or isinstance(payload, str):
        payload = {'reason': payload}
    reason = (validate_payload(RejectPayload, payload, debug).reason or '').strip()

    req = load_request(request_id)
    _check_rejectable(req.get('status'))

    now = _now_local_iso()
    expr = 'SET #status = :cancelled, cancelledAt = :now, updatedAt = :now'
    values = {':cancelled': STATUS_CANCELLED, ':now': now}
    if reason:
        expr += ', cancelledReason = :reason'
        values[':reason'] = reason
    expr += ' REMOVE assignedInspectorId'

    old = _conditional_update(
        request_id,
        expr,
        values,
        Attr('status').is_in(list(OPEN_STATUSES)),
        return_values='ALL_OLD',
        names=_STATUS_NAME,
    )
    if old is None:
        _check_rejectable(load_request(request_id).get('status'))
        raise InvalidState('Request could not be rejected')

    inspector_id = old.get('assignedInspectorId')
    if inspector_id:
        users.release_inspector(inspector_id, request_id, debug=debug)

    updated = dict(old)
    updated.pop('assignedInspectorId', None)
    updated.update({'status': STATUS_CANCELLED, 'cancelledAt': now, 'updatedAt': now})
    if reason:
        updated['cancelledReason'] = reason
    if debug:
        debug(f'reject_request: {request_id} cancelled, released inspector={inspector_id}')
    return updated


# inspector actions ----------------------------------------------------------

def start_inspection(request_id, actor, debug=None):
    req = load_request(request_id)
    actor_id = (actor or {}).get('id')
    if not actor_id or req.get('assignedInspectorId') != actor_id:
        raise Forbidden('You do not have permission to start this inspection request')
    if req.get('status') not in STARTABLE_STATUSES:
        raise invalid_transition('started', req.get('status'), STARTABLE_STATUSES)
    if req.get('inspectionStartTime'):
        raise InvalidState('Inspection has already been started', inspectionStartTime=req.get('inspectionStartTime'))

    now = _now_local_iso()
    updated = _conditional_update(
        request_id,
        'SET #status = :in_progress, inspectionStartTime = :now, updatedAt = :now',
        {':in_progress': STATUS_IN_PROGRESS, ':now': now},
        Attr('status').is_in(list(STARTABLE_STATUSES))
        & Attr('inspectionStartTime').not_exists()
        & Attr('assignedInspectorId').eq(actor_id),
        names=_STATUS_NAME,
    )
    if updated is None:
        current = load_request(request_id)
        if current.get('assignedInspectorId') != actor_id:
            raise Forbidden('You do not have permission to start this inspection request')
        if current.get('inspectionStartTime') and current.get('status') in STARTABLE_STATUSES:
            raise InvalidState('Inspection has already been started')
        raise invalid_transition('started', current.get('status'), STARTABLE_STATUSES)
    if debug:
        debug(f'start_inspection: {request_id} started by {actor_id} at {now}')
    return updated


def _seconds_between(start_iso, end_iso):
    start, end = parse_iso(start_iso), parse_iso(end_iso)
    if not start or not end:
        return None
    return max(0, int(round((end - start).total_seconds())))


def link_inspection(request_id, inspection_id, inspector_id, final_status, debug=None, require_linked=False):
    """Attach an inspection record to its request, completing the request when the record is final.

    Only the assigned inspector's record on an open request is linked. Anything
    else is logged and skipped; the inspection record is still kept.
    Returns the updated request, or None when nothing was changed.
    """
    req = find_request(request_id)
    if (
        not req
        or req.get('assignedInspectorId') != inspector_id
        or req.get('status') not in OPEN_STATUSES
        or (require_linked and req.get('linkedInspectionId') != inspection_id)
    ):
        if debug:
            debug(f'link_inspection: request {request_id} not updated (not found, not assigned to {inspector_id}, or closed)')
        return None

    submitting = final_status in SUBMITTED_INSPECTION_STATUSES
    now = _now_local_iso()
    parts = ['linkedInspectionId = :iid', 'updatedAt = :now']
    values = {':iid': inspection_id, ':now': now}
    names = None
    condition = Attr('status').is_in(list(OPEN_STATUSES)) & Attr('assignedInspectorId').eq(inspector_id)
    if require_linked:
        condition = condition & Attr('linkedInspectionId').eq(inspection_id)
    if submitting:
        names = _STATUS_NAME
        parts += ['#status = :completed', 'inspectionEndTime = :now']
        values[':completed'] = STATUS_COMPLETED
        start = req.get('inspectionStartTime')
        if start:
            parts.append('timeTaken = :taken')
            values[':taken'] = _seconds_between(start, now) or 0
            condition = condition & Attr('inspectionStartTime').eq(start)
        else:
            condition = condition & Attr('inspectionStartTime').not_exists()

    updated = _conditional_update(request_id, 'SET ' + ', '.join(parts), values, condition, names=names)
    if updated is None:
        if debug:
            debug(f'link_inspection: request {request_id} changed concurrently, not linked to {inspection_id}')
        return None

    if submitting:
        users.release_inspector(inspector_id, request_id, debug=debug)
    if debug:
        debug(f"link_inspection: request {request_id} linked to {inspection_id} status={updated.get('status')}")
    return updated


def complete_linked_request(inspection_id, inspector_id, request_id=None, debug=None):
    """Complete the request an inspection record was linked to when the record is finalised later."""
    if not request_id:
        matches = scan_all(_requests(), FilterExpression=Attr('linkedInspectionId').eq(inspection_id))
        if not matches:
            if debug:
                debug(f'complete_linked_request: no request linked to {inspection_id}')
            return None
        request_id = matches[0]['id']
    return link_inspection(request_id, inspection_id, inspector_id, 'completed', debug=debug, require_linked=True)


# reads ----------------------------------------------------------------------

def can_view(req, actor):
    actor_id = (actor or {}).get('id')
    return _is_admin(actor) or (actor_id is not None and actor_id in (req.get('userId'), req.get('assignedInspectorId')))


def get_request(request_id, actor, debug=None):
    req = load_request(request_id)
    if not can_view(req, actor):
        raise Forbidden('You do not have permission to view this inspection request')
    return expand_request(req, debug=debug)

"""Inspection records: one filled-in checklist per inspection, authored by one inspector.

A record is editable only while it is a draft. Ratings are recomputed on every
write. A record created or finalised against an inspection request completes
that request (see inspection_requests.lifecycle.link_inspection).
"""

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from common import config
from common.dynamo import table, to_dynamo, is_condition_failure, query_all, scan_all
from common.errors import Forbidden, InvalidState, NotFound, ValidationFailure
from common.ids import new_id
from common.pagination import paginate, sort_items
from common.responses import _now_local_iso
from common.users import ROLE_ADMIN, ROLE_INSPECTOR
from inspection_requests.lifecycle import complete_linked_request, link_inspection
from schemas.db import (
    VIDEO_ALLOWED_TYPES,
    CreateInspectionPayload,
    ListInspectionsParams,
    UpdateInspectionPayload,
    validate_payload,
)

from .ratings import apply_ratings
from .templates import get_template, load_active_template

STATUS_DRAFT = 'draft'
FINAL_STATUSES = ('completed', 'submitted')

DETAIL_FIELDS = ('vehicleDetails', 'serviceWarrantyOverview', 'interiorDetails', 'exteriorDetails', 'damagedCoordinates')


def _inspections():
    return table(config.INSPECTIONS_TABLE)


def _bad_request(message, **details):
    return ValidationFailure(message, errors=[{'field': 'types', 'message': message}], **details)


def check_types_against_template(types, template):
    """Every template type present exactly once, item counts matching, videos where allowed."""
    template_types = {t['typeName']: t for t in template.get('types') or []}
    if not template_types:
        raise _bad_request('Checklist template has no types defined')

    names = [t['typeName'] for t in types]
    missing = [name for name in template_types if name not in names]
    if missing:
        raise _bad_request(f"Missing required types: {', '.join(missing)}", missingTypes=missing)
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise _bad_request(f"Duplicate types: {', '.join(dupes)}")

    for t in types:
        tmpl = template_types.get(t['typeName'])
        if tmpl is None:
            raise _bad_request(f"Invalid type: {t['typeName']}")
        if len(t.get('checklistItems') or []) != len(tmpl.get('checklistItems') or []):
            raise _bad_request(f"Checklist items count mismatch for type: {t['typeName']}")
        videos = t.get('videos') or []
        if videos:
            if t['typeName'] not in VIDEO_ALLOWED_TYPES:
                raise _bad_request(f"Videos are only allowed for {' and '.join(VIDEO_ALLOWED_TYPES)} types")
            max_videos = int(tmpl.get('maxVideos') or 0)
            if len(videos) > max_videos:
                raise _bad_request(f"Maximum {max_videos} videos allowed for {t['typeName']}")


def _normalize_types(types):
    out = []
    for t in types:
        row = dict(t)
        row['overallRemarks'] = row.get('overallRemarks') or ''
        row['checklistItems'] = [
            {**it, 'remarks': it.get('remarks') or '', 'photos': it.get('photos') or []}
            for it in row.get('checklistItems') or []
        ]
        out.append(row)
    return out


def _can_read(ins, actor):
    return actor.get('role') == ROLE_ADMIN or ins.get('inspectorId') == actor.get('id')


def load_inspection(inspection_id):
    ins = _inspections().get_item(Key={'id': inspection_id}).get('Item') if inspection_id else None
    if not ins:
        raise NotFound('Inspection not found', id=inspection_id)
    return ins


def create_inspection(payload, actor, debug=None):
    if actor.get('role') != ROLE_INSPECTOR:
        raise Forbidden('Only inspectors can create inspections')
    data = validate_payload(CreateInspectionPayload, payload, debug)
    template = load_active_template(data.templateId)

    dumped = data.model_dump(mode='json')
    check_types_against_template(dumped['types'], template)
    types, overall = apply_ratings(_normalize_types(dumped['types']))

    now = _now_local_iso()
    item = {
        'id': new_id('inspection'),
        'templateId': data.templateId,
        'templateVersion': template.get('version'),
        'inspectorId': actor['id'],
        'vehicleInfo': {k: v for k, v in (dumped.get('vehicleInfo') or {}).items() if v is not None},
        'types': types,
        'overallRating': overall,
        'status': data.status,
        'inspectionDate': dumped.get('inspectionDate') or now,
        'notes': data.notes or '',
        'createdAt': now,
        'updatedAt': now,
    }
    for field in DETAIL_FIELDS:
        if dumped.get(field) is not None:
            item[field] = dumped[field]
    if data.inspectionRequestId:
        item['inspectionRequestId'] = data.inspectionRequestId
    if data.status in FINAL_STATUSES:
        item['completedAt'] = now

    _inspections().put_item(Item=to_dynamo(item), ConditionExpression=Attr('id').not_exists())
    if debug:
        debug(f"create_inspection: {item['id']} template={data.templateId} status={data.status} overall={overall}")

    if data.inspectionRequestId:
        linked = link_inspection(data.inspectionRequestId, item['id'], actor['id'], data.status, debug=debug)
        item['linkedRequest'] = {'id': linked['id'], 'status': linked.get('status')} if linked else None
    return item


def update_inspection(inspection_id, payload, actor, debug=None):
    """Edit a draft record. Moving it to completed/submitted completes the linked request."""
    data = validate_payload(UpdateInspectionPayload, payload, debug)
    ins = load_inspection(inspection_id)
    if ins.get('inspectorId') != actor.get('id'):
        raise Forbidden('You do not have permission to update this inspection')
    if ins.get('status') != STATUS_DRAFT:
        raise InvalidState('Only draft inspections can be updated', currentStatus=ins.get('status'))

    changes = data.model_dump(mode='json', exclude_unset=True)
    source_types = changes.get('types')
    if source_types is not None:
        template = get_template(ins.get('templateId'))
        if not template:
            raise NotFound('Checklist template not found', templateId=ins.get('templateId'))
        check_types_against_template(source_types, template)
        source_types = _normalize_types(source_types)
    else:
        source_types = ins.get('types') or []
    types, overall = apply_ratings(source_types)

    now = _now_local_iso()
    parts = ['types = :types', 'overallRating = :overall', 'updatedAt = :now']
    values = {':types': types, ':overall': overall, ':now': now}
    names = {}
    if 'vehicleInfo' in changes:
        merged = dict(ins.get('vehicleInfo') or {})
        merged.update({k: v for k, v in (changes['vehicleInfo'] or {}).items() if v is not None})
        parts.append('vehicleInfo = :vi')
        values[':vi'] = merged
    if 'notes' in changes:
        parts.append('notes = :notes')
        values[':notes'] = changes['notes'] or ''
    for i, field in enumerate(DETAIL_FIELDS):
        if field in changes:
            parts.append(f'{field} = :d{i}')
            values[f':d{i}'] = changes[field]

    new_status = changes.get('status')
    submitting = new_status in FINAL_STATUSES
    if new_status:
        parts.append('#status = :status')
        names['#status'] = 'status'
        values[':status'] = new_status
    if submitting:
        parts.append('completedAt = :now')

    kwargs = {
        'Key': {'id': inspection_id},
        'UpdateExpression': 'SET ' + ', '.join(parts),
        'ConditionExpression': Attr('status').eq(STATUS_DRAFT) & Attr('inspectorId').eq(actor['id']),
        'ExpressionAttributeValues': to_dynamo(values),
        'ReturnValues': 'ALL_NEW',
    }
    if names:
        kwargs['ExpressionAttributeNames'] = names
    try:
        resp = _inspections().update_item(**kwargs)
    except ClientError as e:
        if not is_condition_failure(e):
            raise
        current = load_inspection(inspection_id)
        raise InvalidState('Only draft inspections can be updated', currentStatus=current.get('status'))
    updated = resp.get('Attributes') or {}
    if debug:
        debug(f'update_inspection: {inspection_id} fields={sorted(changes)} overall={overall}')

    if submitting:
        linked = complete_linked_request(
            inspection_id, actor['id'], request_id=ins.get('inspectionRequestId'), debug=debug
        )
        updated['linkedRequest'] = {'id': linked['id'], 'status': linked.get('status')} if linked else None
    return updated


def get_inspection(inspection_id, actor, debug=None):
    ins = load_inspection(inspection_id)
    if not _can_read(ins, actor):
        raise Forbidden('You do not have permission to view this inspection')
    tpl = get_template(ins.get('templateId'))
    ins['template'] = {k: tpl.get(k) for k in ('id', 'name', 'description', 'version')} if tpl else None
    return ins


def list_inspections(params, actor, debug=None):
    p = validate_payload(ListInspectionsParams, params or {}, debug)
    filt = None
    if p.status:
        filt = Attr('status').eq(p.status)
    if p.templateId:
        cond = Attr('templateId').eq(p.templateId)
        filt = cond if filt is None else filt & cond
    extra = {'FilterExpression': filt} if filt is not None else {}

    if actor.get('role') == ROLE_ADMIN:
        items = scan_all(_inspections(), **extra)
    else:
        items = query_all(
            _inspections(),
            IndexName=config.INSPECTIONS_INSPECTOR_INDEX,
            KeyConditionExpression=Key('inspectorId').eq(actor['id']),
            **extra,
        )
    rows, pagination = paginate(sort_items(items, p.sortBy, p.sortOrder), p.page, p.limit)
    if debug:
        debug(f"list_inspections: actor={actor['id']} total={pagination['totalCount']}")
    return {
        'inspections': rows,
        'pagination': pagination,
        'filters': {'status': p.status, 'templateId': p.templateId, 'sortBy': p.sortBy, 'sortOrder': p.sortOrder},
    }


def delete_inspection(inspection_id, actor, debug=None):
    ins = load_inspection(inspection_id)
    if ins.get('inspectorId') != actor.get('id'):
        raise Forbidden('You do not have permission to delete this inspection')
    if ins.get('status') != STATUS_DRAFT:
        raise InvalidState('Only draft inspections can be deleted', currentStatus=ins.get('status'))
    try:
        _inspections().delete_item(
            Key={'id': inspection_id},
            ConditionExpression=Attr('status').eq(STATUS_DRAFT) & Attr('inspectorId').eq(actor['id']),
        )
    except ClientError as e:
        if not is_condition_failure(e):
            raise
        raise InvalidState('Only draft inspections can be deleted', currentStatus=load_inspection(inspection_id).get('status'))
    if debug:
        debug(f"delete_inspection: {inspection_id} deleted by {actor['id']}")
    return {'id': inspection_id}

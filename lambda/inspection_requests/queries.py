from boto3.dynamodb.conditions import Attr, Key

from common import config
from common.dynamo import table, query_all, scan_all
from common.errors import Forbidden
from common.pagination import paginate, sort_items
from common.users import ROLE_ADMIN, ROLE_INSPECTOR
from schemas.db import ListRequestsParams, validate_payload

from .lifecycle import STATUS_ASSIGNED, STATUS_CANCELLED, STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_PENDING
from .summary import attach_inspection_summaries


def _params(params, debug=None):
    if isinstance(params, ListRequestsParams):
        return params
    return validate_payload(ListRequestsParams, params or {}, debug)


def _status_filter(p):
    return {'FilterExpression': Attr('status').eq(p.status)} if p.status else {}


def _page(items, p, debug=None):
    items = sort_items(items, p.sortBy, p.sortOrder)
    rows, pagination = paginate(items, p.page, p.limit)
    return {
        'requests': attach_inspection_summaries(rows, debug=debug),
        'pagination': pagination,
        'filters': {'status': p.status, 'sortBy': p.sortBy, 'sortOrder': p.sortOrder},
    }


def get_user_requests(params, actor, me_only=False, debug=None):
    """Requests owned by the caller; admins see every request unless `me_only` is set."""
    p = _params(params, debug)
    tbl = table(config.REQUESTS_TABLE)
    if me_only or actor.get('role') != ROLE_ADMIN:
        items = query_all(
            tbl,
            IndexName=config.REQUESTS_USER_INDEX,
            KeyConditionExpression=Key('userId').eq(actor['id']),
            **_status_filter(p),
        )
    else:
        items = scan_all(tbl, **_status_filter(p))
    if debug:
        debug(f"get_user_requests: actor={actor['id']} role={actor.get('role')} me_only={me_only} count={len(items)}")
    return _page(items, p, debug)


def get_assigned_requests(params, actor, debug=None):
    if actor.get('role') != ROLE_INSPECTOR:
        raise Forbidden('Only inspectors can view their assigned requests')
    p = _params(params, debug)
    items = query_all(
        table(config.REQUESTS_TABLE),
        IndexName=config.REQUESTS_INSPECTOR_INDEX,
        KeyConditionExpression=Key('assignedInspectorId').eq(actor['id']),
        **_status_filter(p),
    )
    if debug:
        debug(f"get_assigned_requests: inspector={actor['id']} count={len(items)}")
    return _page(items, p, debug)


def get_all_requests_for_admin(params, actor, debug=None):
    """Every request, paginated, with a per-status count over the whole table."""
    if actor.get('role') != ROLE_ADMIN:
        raise Forbidden('Only admins can view all inspection requests')
    p = _params(params, debug)
    every = scan_all(table(config.REQUESTS_TABLE))
    counts = {s: 0 for s in (STATUS_PENDING, STATUS_ASSIGNED, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED)}
    for it in every:
        if it.get('status') in counts:
            counts[it['status']] += 1

    items = [it for it in every if not p.status or it.get('status') == p.status]
    result = _page(items, p, debug)
    result['statistics'] = {
        'total': len(items),
        'pending': counts[STATUS_PENDING],
        'assigned': counts[STATUS_ASSIGNED],
        'inProgress': counts[STATUS_IN_PROGRESS],
        'completed': counts[STATUS_COMPLETED],
        'cancelled': counts[STATUS_CANCELLED],
    }
    return result

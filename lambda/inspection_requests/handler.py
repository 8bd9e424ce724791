from common.errors import Forbidden, ValidationFailure
from common.ids import require_id
from common.responses import build_response
from common.users import ROLE_ADMIN, list_available_inspectors
from schemas.db import ListInspectorsParams, validate_payload

from . import lifecycle, queries

_LIST_KEYS = ('page', 'limit', 'status', 'sortBy', 'sortOrder', 'sort_by', 'sort_order')


def _request_id(body):
    rid = body.get('id') or body.get('request_id') or body.get('inspectionRequestId')
    if not rid:
        raise ValidationFailure('id is required', errors=[{'field': 'id', 'message': 'Inspection request id is required'}])
    return require_id(rid, 'request', 'id')


def _list_params(body):
    return {k: v for k, v in body.items() if k in _LIST_KEYS}


def _payload(body, *strip):
    """The nested `request` object when present, else the body minus routing keys."""
    if isinstance(body.get('request'), dict):
        return body['request']
    return {k: v for k, v in body.items() if k not in ('action', 'Action', 'id', 'request_id') + strip}


def handle_create_request(body, actor, debug):
    created = lifecycle.create_request(_payload(body), debug=debug)
    return build_response(201, {'message': 'Inspection request created successfully', 'request': created})


def handle_get_request(body, actor, debug):
    req = lifecycle.get_request(_request_id(body), actor, debug=debug)
    return build_response(200, {'request': req})


def handle_update_request(body, actor, debug):
    updated = lifecycle.update_request(_request_id(body), _payload(body, 'inspectionRequestId'), actor, debug=debug)
    return build_response(200, {'message': 'Inspection request updated successfully', 'request': updated})


def handle_assign_inspector(body, actor, debug):
    updated = lifecycle.assign_inspector(_request_id(body), {'inspectorId': body.get('inspectorId')}, actor, debug=debug)
    return build_response(200, {'message': 'Inspector assigned successfully', 'request': updated})


def handle_approve_request(body, actor, debug):
    updated = lifecycle.approve_request(_request_id(body), actor, debug=debug)
    return build_response(200, {'message': 'Inspection request approved successfully', 'request': updated})


def handle_reject_request(body, actor, debug):
    updated = lifecycle.reject_request(_request_id(body), {'reason': body.get('reason')}, actor, debug=debug)
    return build_response(200, {'message': 'Inspection request rejected successfully', 'request': updated})


def handle_start_inspection(body, actor, debug):
    updated = lifecycle.start_inspection(_request_id(body), actor, debug=debug)
    return build_response(200, {'message': 'Inspection started successfully', 'request': updated})


def handle_list_my_requests(body, actor, debug):
    return build_response(200, queries.get_user_requests(_list_params(body), actor, me_only=True, debug=debug))


def handle_list_user_requests(body, actor, debug):
    return build_response(200, queries.get_user_requests(_list_params(body), actor, debug=debug))


def handle_list_assigned_requests(body, actor, debug):
    return build_response(200, queries.get_assigned_requests(_list_params(body), actor, debug=debug))


def handle_list_all_requests(body, actor, debug):
    return build_response(200, queries.get_all_requests_for_admin(_list_params(body), actor, debug=debug))


def handle_list_available_inspectors(body, actor, debug):
    if actor.get('role') != ROLE_ADMIN:
        raise Forbidden('Only admins can list available inspectors')
    p = validate_payload(ListInspectorsParams, {k: body.get(k) for k in ('page', 'limit', 'availableStatus') if body.get(k) is not None}, debug)
    return build_response(200, list_available_inspectors(p.page, p.limit, p.availableStatus))

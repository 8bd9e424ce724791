from common.errors import InspectionError
from common.responses import attach_debug, build_response, get_actor, parse_body

from .handler import (
    handle_approve_request,
    handle_assign_inspector,
    handle_create_request,
    handle_get_request,
    handle_list_all_requests,
    handle_list_assigned_requests,
    handle_list_available_inspectors,
    handle_list_my_requests,
    handle_list_user_requests,
    handle_reject_request,
    handle_start_inspection,
    handle_update_request,
)

ACTIONS = {
    'create_request': handle_create_request,
    'get_request': handle_get_request,
    'update_request': handle_update_request,
    'assign_inspector': handle_assign_inspector,
    'approve_request': handle_approve_request,
    'reject_request': handle_reject_request,
    'start_inspection': handle_start_inspection,
    'list_my_requests': handle_list_my_requests,
    'list_user_requests': handle_list_user_requests,
    'list_assigned_requests': handle_list_assigned_requests,
    'list_all_requests': handle_list_all_requests,
    'list_available_inspectors': handle_list_available_inspectors,
}

# intake form is reachable without a login
PUBLIC_ACTIONS = ('create_request',)


def lambda_handler(event, context):
    method = event.get('httpMethod') or event.get('requestContext', {}).get('http', {}).get('method')
    if method == 'OPTIONS':
        return build_response(204, {})

    body = parse_body(event)
    # GET style calls carry list filters in the query string
    for k, v in (event.get('queryStringParameters') or {}).items():
        body.setdefault(k, v)

    # Provide debug function collector for inner handlers
    debug_msgs = []

    def debug(msg):
        s = str(msg)
        print(s)
        debug_msgs.append(s)

    action = body.get('action') or body.get('Action')
    debug(f'inspection_requests: received action={action}')

    handler = ACTIONS.get(action)
    if handler is None:
        return attach_debug(build_response(400, {'message': 'Unsupported action', 'action': action}), debug_msgs)

    actor = get_actor(event)
    if actor is None and action not in PUBLIC_ACTIONS:
        return attach_debug(build_response(401, {'message': 'Authentication required', 'error': 'unauthorized'}), debug_msgs)

    try:
        resp = handler(body, actor, debug)
    except InspectionError as e:
        debug(f'{action} rejected: {e.kind}: {e.message}')
        resp = build_response(e.status_code, e.to_body())
    except Exception as e:
        debug(f'{action} failed: {e}')
        resp = build_response(500, {'message': 'Internal server error', 'error': str(e)})

    return attach_debug(resp, debug_msgs)

from common.errors import InspectionError
from common.responses import attach_debug, build_response, get_actor, parse_body

from .handler import (
    handle_create_inspection,
    handle_create_template,
    handle_delete_inspection,
    handle_get_inspection,
    handle_get_template,
    handle_list_inspections,
    handle_list_templates,
    handle_update_inspection,
)

ACTIONS = {
    'create_template': handle_create_template,
    'list_templates': handle_list_templates,
    'get_template': handle_get_template,
    'create_inspection': handle_create_inspection,
    'update_inspection': handle_update_inspection,
    'get_inspection': handle_get_inspection,
    'list_inspections': handle_list_inspections,
    'delete_inspection': handle_delete_inspection,
}


def lambda_handler(event, context):
    method = event.get('httpMethod') or event.get('requestContext', {}).get('http', {}).get('method')
    if method == 'OPTIONS':
        return build_response(204, {})

    body = parse_body(event)
    for k, v in (event.get('queryStringParameters') or {}).items():
        body.setdefault(k, v)

    debug_msgs = []

    def debug(msg):
        s = str(msg)
        print(s)
        debug_msgs.append(s)

    action = body.get('action') or body.get('Action')
    debug(f'checklists: received action={action}')

    handler = ACTIONS.get(action)
    if handler is None:
        return attach_debug(build_response(400, {'message': 'Unsupported action', 'action': action}), debug_msgs)

    actor = get_actor(event)
    if actor is None:
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

from common.errors import NotFound, ValidationFailure
from common.ids import require_id
from common.responses import build_response

from . import inspections, templates

_ROUTING_KEYS = ('action', 'Action', 'id', 'inspection_id', 'inspectionId')
_LIST_KEYS = ('page', 'limit', 'status', 'templateId', 'sortBy', 'sortOrder', 'sort_by', 'sort_order', 'template_id')


def _require(body, prefix, *keys):
    for k in keys:
        if body.get(k):
            return require_id(body[k], prefix, keys[0])
    raise ValidationFailure(f'{keys[0]} is required', errors=[{'field': keys[0], 'message': f'{keys[0]} is required'}])


def _payload(body, nested):
    if isinstance(body.get(nested), dict):
        return body[nested]
    return {k: v for k, v in body.items() if k not in _ROUTING_KEYS}


def handle_create_template(body, actor, debug):
    created = templates.create_template(_payload(body, 'template'), actor, debug=debug)
    return build_response(201, {'message': 'Checklist template created successfully', 'template': created})


def handle_list_templates(body, actor, debug):
    return build_response(200, {'templates': templates.list_active_templates()})


def handle_get_template(body, actor, debug):
    template_id = _require(body, 'template', 'id', 'templateId')
    tpl = templates.get_active_template(template_id)
    if not tpl:
        raise NotFound('Checklist template not found or is not active', templateId=template_id)
    return build_response(200, {'template': tpl})


def handle_create_inspection(body, actor, debug):
    created = inspections.create_inspection(_payload(body, 'inspection'), actor, debug=debug)
    return build_response(201, {'message': 'Inspection created successfully', 'inspection': created})


def handle_update_inspection(body, actor, debug):
    inspection_id = _require(body, 'inspection', 'id', 'inspectionId', 'inspection_id')
    updated = inspections.update_inspection(inspection_id, _payload(body, 'inspection'), actor, debug=debug)
    return build_response(200, {'message': 'Inspection updated successfully', 'inspection': updated})


def handle_get_inspection(body, actor, debug):
    inspection_id = _require(body, 'inspection', 'id', 'inspectionId', 'inspection_id')
    return build_response(200, {'inspection': inspections.get_inspection(inspection_id, actor, debug=debug)})


def handle_list_inspections(body, actor, debug):
    params = {k: v for k, v in body.items() if k in _LIST_KEYS}
    return build_response(200, inspections.list_inspections(params, actor, debug=debug))


def handle_delete_inspection(body, actor, debug):
    inspection_id = _require(body, 'inspection', 'id', 'inspectionId', 'inspection_id')
    inspections.delete_inspection(inspection_id, actor, debug=debug)
    return build_response(200, {'message': 'Inspection deleted successfully', 'id': inspection_id})

from boto3.dynamodb.conditions import Attr

from common import config
from common.dynamo import table, to_dynamo, scan_all
from common.errors import Forbidden, NotFound
from common.ids import new_id
from common.responses import _now_local_iso
from common.users import ROLE_ADMIN
from schemas.db import TemplatePayload, validate_payload

LIST_FIELDS = ('id', 'name', 'description', 'types', 'version', 'createdAt')


def _templates():
    return table(config.TEMPLATES_TABLE)


def get_template(template_id):
    if not template_id:
        return None
    return _templates().get_item(Key={'id': template_id}).get('Item')


def get_active_template(template_id):
    tpl = get_template(template_id)
    if not tpl or not tpl.get('isActive'):
        return None
    return tpl


def load_active_template(template_id):
    tpl = get_active_template(template_id)
    if not tpl:
        raise NotFound('Checklist template not found or is not active', templateId=template_id)
    return tpl


def list_active_templates():
    items = scan_all(_templates(), FilterExpression=Attr('isActive').eq(True))
    items.sort(key=lambda t: ((t.get('name') or '').lower(), t.get('createdAt') or ''))
    return [{k: t.get(k) for k in LIST_FIELDS} for t in items]


def create_template(payload, actor, debug=None):
    if (actor or {}).get('role') != ROLE_ADMIN:
        raise Forbidden('Only admins can create checklist templates')
    data = validate_payload(TemplatePayload, payload, debug)

    now = _now_local_iso()
    types = []
    for t in data.types:
        row = t.model_dump(mode='json')
        row['checklistItems'] = sorted(row['checklistItems'], key=lambda i: i['position'])
        types.append(row)

    item = {
        'id': new_id('template'),
        'name': data.name,
        'description': data.description or '',
        'types': types,
        'isActive': data.isActive,
        'version': 1,
        'createdBy': actor['id'],
        'createdAt': now,
        'updatedAt': now,
    }
    _templates().put_item(Item=to_dynamo(item), ConditionExpression=Attr('id').not_exists())
    if debug:
        debug(f"create_template: {item['id']} '{data.name}' with {len(types)} types")
    return item

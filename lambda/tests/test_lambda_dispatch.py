import json
from decimal import Decimal

import pytest

from common import config
from inspection_requests import lambda_function as requests_lambda
from checklists import lambda_function as checklists_lambda

from conftest import make_request, make_user, request_row


def _event(body, actor=None, method='POST', query=None):
    event = {'httpMethod': method, 'body': json.dumps(body) if body is not None else None}
    if actor:
        event['requestContext'] = {'authorizer': {'userId': actor[0], 'role': actor[1]}}
    if query:
        event['queryStringParameters'] = query
    return event


def _call(fn, event):
    resp = fn(event, None)
    return resp['statusCode'], json.loads(resp['body'])


ADMIN = ('user_admin', 'admin')
OWNER = ('user_owner', 'user')
INSPECTOR = ('user_insp_a', 'inspector')


def test_options_preflight():
    resp = requests_lambda.lambda_handler({'httpMethod': 'OPTIONS'}, None)
    assert resp['statusCode'] == 204
    assert resp['headers']['Access-Control-Allow-Origin'] == '*'


def test_unknown_action(fake_db):
    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'explode'}, ADMIN))
    assert status == 400
    assert body['message'] == 'Unsupported action'


def test_missing_identity_is_401(fake_db):
    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'get_request', 'id': 'request_1'}))
    assert status == 401
    assert body['error'] == 'unauthorized'


def test_public_intake_needs_no_login(fake_db):
    status, body = _call(requests_lambda.lambda_handler, _event({
        'action': 'create_request',
        'request': {
            'email': 'walkin@example.com',
            'vehicleInfo': {'make': 'Toyota', 'model': 'Camry', 'year': 2022},
        },
    }))
    assert status == 201
    assert body['request']['requestId'] == 'CAMRY_TOY_001'
    assert body['request']['status'] == 'pending'


def test_validation_errors_are_400_with_fields(fake_db):
    status, body = _call(requests_lambda.lambda_handler, _event({
        'action': 'create_request',
        'email': 'not-an-email',
        'vehicleInfo': {'make': 'Toyota', 'model': 'Camry', 'year': 2022},
    }))
    assert status == 400
    assert body['error'] == 'validation_failure'
    assert body['errors'][0]['field'] == 'email'


def test_domain_errors_map_to_status_codes(fake_db):
    make_request(fake_db, status='completed', assignedInspectorId='user_insp_a')
    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'approve_request', 'id': 'request_1'}, ADMIN))
    assert status == 409
    assert body['error'] == 'invalid_state'
    assert body['currentStatus'] == 'completed'

    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'approve_request', 'id': 'request_1'}, OWNER))
    assert status == 403

    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'get_request', 'id': 'request_x'}, ADMIN))
    assert status == 404

    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'get_request'}, ADMIN))
    assert status == 400


def test_body_wrapped_in_nested_json_string(fake_db):
    make_request(fake_db)
    make_user(fake_db, 'user_insp_a', role='inspector')
    inner = json.dumps({'action': 'assign_inspector', 'id': 'request_1', 'inspectorId': 'user_insp_a'})
    status, body = _call(requests_lambda.lambda_handler, _event({'body': inner}, ADMIN))
    assert status == 200
    assert body['request']['status'] == 'assigned'
    assert request_row(fake_db, 'request_1')['assignedInspectorId'] == 'user_insp_a'


def test_list_filters_from_query_string(fake_db):
    make_request(fake_db, 'request_001')
    make_request(fake_db, 'request_002', status='cancelled')
    status, body = _call(
        requests_lambda.lambda_handler,
        _event(None, OWNER, method='GET', query={'action': 'list_my_requests', 'status': 'cancelled', 'limit': '5'}),
    )
    assert status == 200
    assert [r['id'] for r in body['requests']] == ['request_002']
    assert body['pagination']['limit'] == 5


def test_unexpected_failure_is_500(fake_db, monkeypatch):
    def boom(*a, **kw):
        raise RuntimeError('table unavailable')

    monkeypatch.setitem(requests_lambda.ACTIONS, 'get_request', boom)
    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'get_request', 'id': 'r'}, ADMIN))
    assert status == 500
    assert body['error'] == 'table unavailable'


@pytest.mark.parametrize('enabled', [True, False])
def test_debug_lines_echoed_only_when_enabled(fake_db, monkeypatch, enabled):
    monkeypatch.setattr(config, 'DEBUG_RESPONSES', enabled)
    _, body = _call(requests_lambda.lambda_handler, _event({'action': 'explode'}, ADMIN))
    if enabled:
        assert any('received action=explode' in line for line in body['debug'])
    else:
        assert 'debug' not in body


def test_decimals_serialised_as_numbers(fake_db):
    make_request(fake_db, linkedInspectionId='inspection_1', status='completed', assignedInspectorId='user_insp_a')
    fake_db.Table('Inspections').seed({'id': 'inspection_1', 'status': 'completed', 'overallRating': Decimal('3.75')})
    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'get_request', 'id': 'request_1'}, ADMIN))
    assert status == 200
    assert body['request']['inspectionSummary']['overallRating'] == 3.75


# checklists lambda ------------------------------------------------------------

def test_checklists_require_identity(fake_db):
    status, _ = _call(checklists_lambda.lambda_handler, _event({'action': 'list_templates'}))
    assert status == 401


def test_checklists_template_round_trip(fake_db):
    status, body = _call(checklists_lambda.lambda_handler, _event({
        'action': 'create_template',
        'template': {
            'name': 'Basic',
            'types': [{'typeName': 'Engine', 'checklistItems': [{'position': 1, 'label': 'Oil'}]}],
        },
    }, ADMIN))
    assert status == 201
    template_id = body['template']['id']

    status, body = _call(checklists_lambda.lambda_handler, _event({'action': 'list_templates'}, INSPECTOR))
    assert status == 200
    assert [t['id'] for t in body['templates']] == [template_id]

    status, body = _call(checklists_lambda.lambda_handler, _event({'action': 'get_template', 'id': 'template_nope'}, INSPECTOR))
    assert status == 404


def test_checklists_create_and_fetch_inspection(fake_db):
    _, body = _call(checklists_lambda.lambda_handler, _event({
        'action': 'create_template',
        'template': {
            'name': 'Basic',
            'types': [{'typeName': 'Engine', 'checklistItems': [{'position': 1, 'label': 'Oil'}]}],
        },
    }, ADMIN))
    template_id = body['template']['id']

    status, body = _call(checklists_lambda.lambda_handler, _event({
        'action': 'create_inspection',
        'inspection': {
            'checklist_template_id': template_id,
            'types': [{'typeName': 'Engine', 'checklistItems': [
                {'position': 1, 'label': 'Oil', 'status': 'Fair'},
            ]}],
        },
    }, INSPECTOR))
    assert status == 201
    assert body['inspection']['overallRating'] == 2.5
    inspection_id = body['inspection']['id']

    status, body = _call(checklists_lambda.lambda_handler, _event({'action': 'get_inspection', 'id': inspection_id}, ADMIN))
    assert status == 200
    assert body['inspection']['template']['name'] == 'Basic'


def test_blank_status_filter_is_ignored_on_both_lambdas(fake_db):
    make_request(fake_db, 'request_001')
    status, body = _call(
        requests_lambda.lambda_handler,
        _event(None, OWNER, method='GET', query={'action': 'list_my_requests', 'status': ''}),
    )
    assert status == 200
    assert body['filters']['status'] is None

    status, body = _call(
        checklists_lambda.lambda_handler,
        _event(None, INSPECTOR, method='GET', query={'action': 'list_inspections', 'status': '', 'templateId': ''}),
    )
    assert status == 200
    assert body['filters']['status'] is None
    assert body['filters']['templateId'] is None


def test_available_inspectors_admin_only(fake_db):
    make_user(fake_db, 'user_insp_a', role='inspector')
    status, _ = _call(requests_lambda.lambda_handler, _event({'action': 'list_available_inspectors'}, INSPECTOR))
    assert status == 403
    status, body = _call(requests_lambda.lambda_handler, _event({'action': 'list_available_inspectors'}, ADMIN))
    assert status == 200
    assert [i['id'] for i in body['inspectors']] == ['user_insp_a']

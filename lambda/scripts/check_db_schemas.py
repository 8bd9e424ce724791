import os, sys
# ensure the shared layer is importable without using the reserved word 'lambda' as a top-level package
base = os.path.normpath(os.path.join(os.path.dirname(__file__), '..', 'python'))
if base not in sys.path:
    sys.path.insert(0, base)
from common.errors import ValidationFailure
from schemas.db import CreateRequestPayload, CreateInspectionPayload, TemplatePayload, validate_payload

sample_request = {
    'email': 'Driver@Example.com',
    'first_name': 'Alex',
    'vehicle_info': {'make': 'Toyota', 'model': 'Camry', 'year': 2022, 'vin': 'jt2bf22k1w0123456'},
    'preferred_date': '2026-03-01',
}

sample_template = {
    'name': 'Standard used car',
    'types': [
        {'typeName': 'Exterior', 'allowVideos': True, 'checklistItems': [{'position': 1, 'label': 'Paint'}]},
        {'typeName': 'Engine', 'checklistItems': [{'position': 1, 'label': 'Oil leaks'}]},
    ],
}

sample_inspection = {
    'checklistTemplateId': 'template_abc123',
    'types': [
        {'typeName': 'Exterior', 'checklistItems': [{'position': 1, 'label': 'Paint', 'status': 'Good'}]},
        {'typeName': 'Engine', 'checklistItems': [{'position': 1, 'label': 'Oil leaks', 'status': 'Not Checked'}]},
    ],
}

for model, sample in ((CreateRequestPayload, sample_request), (TemplatePayload, sample_template), (CreateInspectionPayload, sample_inspection)):
    print(f'Validating {model.__name__}...')
    try:
        print(validate_payload(model, sample, debug=print).model_dump(mode='json'))
    except ValidationFailure as e:
        print('rejected:', e.to_body())

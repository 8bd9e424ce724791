import os

# Table names default to the deployed stack; override per stage through the function environment
REQUESTS_TABLE = os.environ.get('REQUESTS_TABLE', 'InspectionRequests')
REQUEST_IDS_TABLE = os.environ.get('REQUEST_IDS_TABLE', 'InspectionRequestIds')
USERS_TABLE = os.environ.get('USERS_TABLE', 'Users')
COUNTERS_TABLE = os.environ.get('COUNTERS_TABLE', 'Counters')
TEMPLATES_TABLE = os.environ.get('TEMPLATES_TABLE', 'ChecklistTemplates')
INSPECTIONS_TABLE = os.environ.get('INSPECTIONS_TABLE', 'Inspections')

# GSIs
USERS_EMAIL_INDEX = os.environ.get('USERS_EMAIL_INDEX', 'email-index')
REQUESTS_USER_INDEX = os.environ.get('REQUESTS_USER_INDEX', 'userId-index')
REQUESTS_INSPECTOR_INDEX = os.environ.get('REQUESTS_INSPECTOR_INDEX', 'assignedInspectorId-index')
INSPECTIONS_INSPECTOR_INDEX = os.environ.get('INSPECTIONS_INSPECTOR_INDEX', 'inspectorId-index')

REGION = os.environ.get('AWS_REGION', 'ap-southeast-1')

# Timestamps are written as ISO8601 with a fixed offset (GMT+8 by default)
LOCAL_TZ_OFFSET_HOURS = int(os.environ.get('LOCAL_TZ_OFFSET_HOURS', '8'))

REQUEST_COUNTER_NAME = 'inspectionRequest'
REQUEST_ID_MAX_ATTEMPTS = int(os.environ.get('REQUEST_ID_MAX_ATTEMPTS', '3'))

DB_IDLE_TIMEOUT_SECONDS = int(os.environ.get('DB_IDLE_TIMEOUT_SECONDS', '300'))

DEBUG_RESPONSES = os.environ.get('DEBUG_RESPONSES', 'false').lower() in ('1', 'true', 'yes')

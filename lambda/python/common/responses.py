import json
from datetime import datetime, timezone, timedelta

from . import config
from .dynamo import convert_decimals

CORS_HEADERS = {
    # Allow all origins by default to avoid CORS blocking from mobile browsers; lock this down in production
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type,Authorization',
    'Access-Control-Allow-Methods': 'OPTIONS,POST,GET,PUT',
    'Content-Type': 'application/json'
}


def _local_tz():
    return timezone(timedelta(hours=config.LOCAL_TZ_OFFSET_HOURS))


def _now_local_iso():
    # Return ISO8601 timestamp in local timezone (GMT+8 unless configured otherwise)
    return datetime.now(timezone.utc).astimezone(_local_tz()).isoformat()


def parse_iso(val):
    """Parse an ISO timestamp written by _now_local_iso. Returns None if invalid."""
    if not val:
        return None
    try:
        dt = datetime.fromisoformat(str(val).replace('Z', '+00:00'))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def build_response(status_code, body):
    return {
        'statusCode': status_code,
        'headers': CORS_HEADERS,
        'body': json.dumps(convert_decimals(body))
    }


def parse_body(event):
    """Decode an API Gateway proxy body, tolerating a nested JSON string under 'body'."""
    body = {}
    if event.get('body'):
        try:
            body = json.loads(event['body'])
        except (TypeError, ValueError):
            body = event['body'] if isinstance(event['body'], dict) else {}

    # Safety: if body contains nested JSON string in 'body', try to parse it
    if isinstance(body, dict) and isinstance(body.get('body'), str):
        try:
            nested = json.loads(body['body'])
        except ValueError:
            nested = None
        if isinstance(nested, dict):
            # merge keys (top-level action preferred if present)
            for k, v in nested.items():
                if k not in body:
                    body[k] = v
    return body if isinstance(body, dict) else {}


def get_actor(event):
    """Read the caller identity the API Gateway authorizer attached to the event.

    Token verification happens in the authorizer; here we only pick up its result.
    Supports both the REST (`authorizer.userId`) and HTTP API JWT (`authorizer.jwt.claims`) shapes.
    """
    authorizer = (event.get('requestContext') or {}).get('authorizer') or {}
    claims = (authorizer.get('jwt') or {}).get('claims') or authorizer.get('claims') or {}
    user_id = authorizer.get('userId') or claims.get('userId') or claims.get('sub')
    role = authorizer.get('role') or claims.get('role') or claims.get('custom:role')
    if not user_id or not role:
        return None
    return {'id': str(user_id), 'role': str(role)}


def attach_debug(resp, debug_msgs):
    """Echo collected debug lines in the response body when DEBUG_RESPONSES is on."""
    if not config.DEBUG_RESPONSES or not isinstance(resp, dict) or 'body' not in resp:
        return resp
    try:
        body_json = json.loads(resp['body']) if isinstance(resp['body'], str) else resp['body']
    except ValueError:
        return resp
    if isinstance(body_json, dict):
        body_json['debug'] = debug_msgs
        resp['body'] = json.dumps(body_json)
    return resp

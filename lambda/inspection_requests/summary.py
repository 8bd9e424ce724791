from common import config
from common.dynamo import table
from common.users import find_user_by_id, public_user


def _inspection_summary(inspection_id, cache):
    if inspection_id in cache:
        return cache[inspection_id]
    resp = table(config.INSPECTIONS_TABLE).get_item(Key={'id': inspection_id})
    ins = resp.get('Item')
    summary = {'status': ins.get('status'), 'overallRating': ins.get('overallRating')} if ins else None
    cache[inspection_id] = summary
    return summary


def attach_inspection_summaries(requests, debug=None):
    """Add `inspectionSummary` (status, overallRating) to each request linked to an inspection record."""
    cache = {}
    out = []
    for req in requests:
        row = dict(req)
        linked = row.get('linkedInspectionId')
        if linked:
            summary = _inspection_summary(linked, cache)
            if summary:
                row['inspectionSummary'] = summary
            elif debug:
                debug(f"attach_inspection_summaries: request {row.get('id')} links missing inspection {linked}")
        out.append(row)
    return out


def expand_request(req, debug=None):
    """Single request view: inspection summary plus requester and inspector profiles."""
    row = attach_inspection_summaries([req], debug=debug)[0]
    row['requester'] = public_user(find_user_by_id(row['userId'])) if row.get('userId') else None
    inspector_id = row.get('assignedInspectorId')
    row['assignedInspector'] = public_user(find_user_by_id(inspector_id)) if inspector_id else None
    return row

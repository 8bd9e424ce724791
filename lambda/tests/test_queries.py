import pytest

from common.errors import Forbidden, ValidationFailure
from common import users
from inspection_requests import queries

from conftest import ADMIN, OWNER, make_request, make_user

INSPECTOR = {'id': 'user_insp_a', 'role': 'inspector'}


def _seed(fake_db):
    make_request(fake_db, 'request_001', createdAt='2026-01-01T00:00:00+08:00')
    make_request(fake_db, 'request_002', status='assigned', assignedInspectorId='user_insp_a',
                 createdAt='2026-01-02T00:00:00+08:00')
    make_request(fake_db, 'request_003', status='completed', assignedInspectorId='user_insp_a',
                 linkedInspectionId='inspection_1', createdAt='2026-01-03T00:00:00+08:00')
    make_request(fake_db, 'request_004', status='cancelled', user_id='user_other',
                 createdAt='2026-01-04T00:00:00+08:00')
    fake_db.Table('Inspections').seed({'id': 'inspection_1', 'status': 'completed', 'overallRating': 4})


def _ids(result):
    return [r['id'] for r in result['requests']]


def test_owner_sees_only_their_requests_newest_first(fake_db):
    _seed(fake_db)
    out = queries.get_user_requests({}, OWNER)
    assert _ids(out) == ['request_003', 'request_002', 'request_001']
    assert out['filters'] == {'status': None, 'sortBy': 'createdAt', 'sortOrder': 'DESC'}


def test_admin_sees_everything_unless_me_only(fake_db):
    _seed(fake_db)
    assert len(queries.get_user_requests({}, ADMIN)['requests']) == 4
    assert queries.get_user_requests({}, ADMIN, me_only=True)['requests'] == []


def test_status_filter_and_ascending_order(fake_db):
    _seed(fake_db)
    out = queries.get_user_requests({'status': 'pending', 'sortOrder': 'asc'}, OWNER)
    assert _ids(out) == ['request_001']
    out = queries.get_user_requests({'sortBy': 'id', 'sortOrder': 'ASC'}, OWNER)
    assert _ids(out) == ['request_001', 'request_002', 'request_003']


def test_linked_requests_carry_inspection_summary(fake_db):
    _seed(fake_db)
    out = queries.get_user_requests({}, OWNER)
    by_id = {r['id']: r for r in out['requests']}
    assert by_id['request_003']['inspectionSummary'] == {'status': 'completed', 'overallRating': 4}
    assert 'inspectionSummary' not in by_id['request_001']


def test_pagination_follows_dynamo_pages(fake_db):
    for n in range(1, 13):
        make_request(fake_db, f'request_{n:03d}', createdAt=f'2026-02-{n:02d}T00:00:00+08:00')
    fake_db.Table('InspectionRequests').page_size = 5

    out = queries.get_user_requests({'page': 2, 'limit': 5}, OWNER)
    assert out['pagination'] == {
        'currentPage': 2,
        'totalPages': 3,
        'totalCount': 12,
        'limit': 5,
        'hasNextPage': True,
        'hasPreviousPage': True,
    }
    assert _ids(out) == [f'request_{n:03d}' for n in (7, 6, 5, 4, 3)]


def test_page_past_the_end_is_empty(fake_db):
    _seed(fake_db)
    out = queries.get_user_requests({'page': 9}, OWNER)
    assert out['requests'] == []
    assert out['pagination']['hasNextPage'] is False


@pytest.mark.parametrize('params', [{'limit': 0}, {'limit': 101}, {'page': 0}, {'status': 'open'}, {'sortBy': 'vin'}])
def test_bad_list_params(fake_db, params):
    with pytest.raises(ValidationFailure):
        queries.get_user_requests(params, OWNER)


def test_assigned_requests_for_inspector(fake_db):
    _seed(fake_db)
    out = queries.get_assigned_requests({}, INSPECTOR)
    assert _ids(out) == ['request_003', 'request_002']
    out = queries.get_assigned_requests({'status': 'assigned'}, INSPECTOR)
    assert _ids(out) == ['request_002']


def test_assigned_requests_require_inspector(fake_db):
    with pytest.raises(Forbidden):
        queries.get_assigned_requests({}, OWNER)


def test_admin_listing_counts_every_status(fake_db):
    _seed(fake_db)
    out = queries.get_all_requests_for_admin({'status': 'assigned'}, ADMIN)
    assert _ids(out) == ['request_002']
    assert out['statistics'] == {
        'total': 1,
        'pending': 1,
        'assigned': 1,
        'inProgress': 0,
        'completed': 1,
        'cancelled': 1,
    }


def test_admin_listing_requires_admin(fake_db):
    with pytest.raises(Forbidden):
        queries.get_all_requests_for_admin({}, INSPECTOR)


def test_available_inspectors_excludes_busy_and_inactive(fake_db):
    make_user(fake_db, 'user_insp_a', role='inspector', firstName='Alice')
    make_user(fake_db, 'user_insp_b', role='inspector', firstName='Bob', is_assigned=True, assignedRequestId='request_1')
    make_user(fake_db, 'user_insp_c', role='inspector', firstName='Carol', status='inactive')
    make_user(fake_db, 'user_insp_d', role='inspector', firstName='Dan', availableStatus='weekends')
    make_user(fake_db, 'user_plain', role='user')

    out = users.list_available_inspectors()
    assert [i['id'] for i in out['inspectors']] == ['user_insp_a', 'user_insp_d']
    assert out['pagination']['totalCount'] == 2

    out = users.list_available_inspectors(available_status='weekends')
    assert [i['id'] for i in out['inspectors']] == ['user_insp_d']

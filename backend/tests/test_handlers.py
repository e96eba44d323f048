"""
Tests for the Lambda request boundary and end-to-end flows through handlers.
"""
from unittest.mock import patch

from conftest import api_event, iso_in, response_body
from handlers.bids import get_bid, submit_bid, update_bid_status
from handlers.contracts import get_contract, list_contracts, update_contract_status
from handlers.jobs import create_job, get_job, list_jobs, publish_job
from handlers.reviews import create_review, list_user_reviews
from shared.auth import authenticate, get_user_groups
from shared.config import config
from shared.models import contract_id_for


def as_studio(**kwargs):
    return api_event('studio-1', 'studio', **kwargs)


def as_artist(user_id='artist-1', **kwargs):
    return api_event(user_id, 'artist', **kwargs)


JOB_BODY = {
    'title': 'Title sequence',
    'description': 'Animated main titles',
    'jobType': 'freelance',
    'assignmentMode': 'open',
    'paymentType': 'fixed',
    'minBudget': 2000,
    'maxBudget': 4000,
    'finalDeliveryDate': '2031-05-01',
}


class TestRequestBoundary:

    def test_missing_credential(self, store):
        response = create_job.handler(api_event(body=JOB_BODY), None)
        assert response['statusCode'] == 401
        assert response_body(response) == {'error': 'Not authorized, no token'}

    def test_invalid_json(self, store):
        event = as_studio()
        event['body'] = '{"title": '
        response = create_job.handler(event, None)
        assert response['statusCode'] == 400
        assert response_body(response) == {'error': 'Invalid JSON'}

    def test_not_found(self, store):
        response = get_job.handler(as_artist(path={'jobId': 'missing'}), None)
        assert response['statusCode'] == 404
        assert response_body(response) == {'error': 'Job not found'}

    def test_missing_path_param(self, store):
        response = get_job.handler(as_artist(), None)
        assert response['statusCode'] == 400
        assert response_body(response)['error'] == 'Missing jobId'

    def test_forbidden_role(self, store):
        response = create_job.handler(as_artist(body=JOB_BODY), None)
        assert response['statusCode'] == 403

    def test_cors_headers(self, store):
        response = list_jobs.handler(as_artist(), None)
        assert response['statusCode'] == 200
        assert response['headers']['Access-Control-Allow-Origin'] == '*'
        assert response_body(response) == []

    @patch('handlers.jobs.list_jobs.list_jobs')
    def test_unhandled_error_is_generic(self, mock_list, store):
        mock_list.side_effect = RuntimeError('table scan exploded')
        response = list_jobs.handler(as_artist(), None)
        assert response['statusCode'] == 500
        assert response_body(response) == {'error': 'Internal Server Error'}

    @patch('handlers.jobs.list_jobs.list_jobs')
    def test_debug_exposes_detail(self, mock_list, store, monkeypatch):
        monkeypatch.setattr(config, 'DEBUG', True)
        mock_list.side_effect = RuntimeError('table scan exploded')
        body = response_body(list_jobs.handler(as_artist(), None))
        assert body['detail'] == 'table scan exploded'


class TestCallerResolution:

    def test_groups_from_comma_string(self):
        event = api_event('u-1', 'studio, admin')
        assert get_user_groups(event) == ['studio', 'admin']
        assert authenticate(event).is_admin

    def test_groups_from_list(self):
        event = api_event('u-1')
        event['requestContext']['authorizer']['claims']['cognito:groups'] = ['artist']
        assert authenticate(event).has_role('artist')

    def test_no_groups(self):
        assert authenticate(api_event('u-1')).roles == frozenset()


class TestMarketplaceScenario:
    """Draft job to reviewed contract through the HTTP handlers."""

    def test_bid_acceptance_flow(self, store):
        created = create_job.handler(as_studio(body={**JOB_BODY, 'bidDeadline': iso_in(hours=1)}), None)
        assert created['statusCode'] == 201
        job_id = response_body(created)['job']['jobId']
        assert response_body(created)['job']['status'] == 'draft'

        published = publish_job.handler(as_studio(path={'jobId': job_id}), None)
        assert response_body(published)['job']['status'] == 'open'

        bid_ids = {}
        for bidder in ('artist-1', 'artist-2'):
            response = submit_bid.handler(as_artist(bidder, body={'jobId': job_id, 'amountTotal': 3000}), None)
            assert response['statusCode'] == 201
            bid_ids[bidder] = response_body(response)['bid']['bidId']

        duplicate = submit_bid.handler(as_artist(body={'jobId': job_id, 'amountTotal': 2800}), None)
        assert duplicate['statusCode'] == 400
        assert response_body(duplicate)['error'] == 'You have already submitted a bid for this job'

        accepted = update_bid_status.handler(
            as_studio(path={'bidId': bid_ids['artist-1']}, body={'status': 'accepted'}), None
        )
        assert accepted['statusCode'] == 200
        assert response_body(accepted)['message'] == 'Bid accepted successfully'

        job = response_body(get_job.handler(as_artist(path={'jobId': job_id}), None))
        assert job['status'] == 'awarded'

        bid_b = response_body(get_bid.handler(as_artist('artist-2', path={'bidId': bid_ids['artist-2']}), None))
        assert bid_b['status'] == 'rejected'

        second = update_bid_status.handler(
            as_studio(path={'bidId': bid_ids['artist-2']}, body={'status': 'accepted'}), None
        )
        assert second['statusCode'] == 400

        listed = response_body(list_contracts.handler(as_studio(), None))
        assert [c['jobId'] for c in listed] == [job_id]

        detail = response_body(get_contract.handler(as_studio(path={'contractId': contract_id_for(job_id)}), None))
        assert detail['contract']['status'] == 'active'
        assert len(detail['milestones']) == 1
        assert detail['milestones'][0]['status'] == 'pending'
        assert detail['milestones'][0]['amount'] == 3000

    def test_completion_and_review_flow(self, store):
        store.seed(config.PROFILES_TABLE, {'userId': 'artist-1'})
        job_id = response_body(create_job.handler(
            as_studio(body={**JOB_BODY, 'bidDeadline': iso_in(hours=1)}), None
        ))['job']['jobId']
        publish_job.handler(as_studio(path={'jobId': job_id}), None)
        bid_id = response_body(submit_bid.handler(
            as_artist(body={'jobId': job_id, 'amountTotal': 3000}), None
        ))['bid']['bidId']
        update_bid_status.handler(as_studio(path={'bidId': bid_id}, body={'status': 'accepted'}), None)

        contract_id = contract_id_for(job_id)
        completed = update_contract_status.handler(
            as_artist(path={'contractId': contract_id}, body={'status': 'completed'}), None
        )
        assert response_body(completed)['contract']['status'] == 'completed'

        review = create_review.handler(as_studio(body={'contractId': contract_id, 'rating': 4}), None)
        assert review['statusCode'] == 201

        public = list_user_reviews.handler(api_event(path={'userId': 'artist-1'}), None)
        assert public['statusCode'] == 200
        assert response_body(public)['stats']['totalReviews'] == 1
        assert store.get_item(config.PROFILES_TABLE, {'userId': 'artist-1'})['rating'] == 4
        assert store.get_item(config.JOBS_TABLE, {'jobId': job_id})['status'] == 'completed'

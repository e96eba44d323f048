"""
Tests for the bidding engine and the accept protocol.
"""
import logging
from decimal import Decimal
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from conftest import iso_in
from shared import bids, dynamo
from shared.auth import Caller
from shared.config import config
from shared.errors import (
    Conflict,
    DuplicateBid,
    Forbidden,
    ImmutableState,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from shared.models import bid_id_for, contract_id_for


@pytest.fixture
def open_job(store):
    job = {
        'jobId': 'job-1',
        'title': 'Creature animation',
        'jobType': 'freelance',
        'assignmentMode': 'open',
        'status': 'open',
        'createdBy': 'studio-1',
        'currency': 'USD',
        'bidDeadline': iso_in(days=7),
        'finalDeliveryDate': '2031-03-01T00:00:00.000+00:00',
        'deliverables': ['Final EXRs', 'Breakdown reel'],
        'bidCount': 0,
        'createdAt': '2030-01-01T00:00:00.000+00:00',
    }
    return store.seed(config.JOBS_TABLE, job)


def place(caller, amount=1000, **extra):
    return bids.submit_bid(caller, {'jobId': 'job-1', 'amountTotal': amount, **extra})


def seed_bid(store, bidder, status='pending', job_id='job-1', amount='500'):
    bid = {
        'bidId': bid_id_for(job_id, bidder),
        'jobId': job_id,
        'bidderId': bidder,
        'amountTotal': Decimal(amount),
        'currency': 'USD',
        'status': status,
        'submittedAt': iso_in(minutes=-5),
    }
    if store.get_item(config.JOBS_TABLE, {'jobId': job_id}):
        store.update_item(config.JOBS_TABLE, {'jobId': job_id}, add={'bidCount': 1})
    return store.seed(config.BIDS_TABLE, bid)


def statuses(store):
    return {bid['bidderId']: bid['status'] for bid in store.items(config.BIDS_TABLE)}


class TestSubmitBid:

    def test_submits_pending_bid(self, open_job, artist):
        bid = place(artist, 1200, estimatedDurationDays=10,
                    breakdown=[{'label': 'Animation', 'amount': 1000}, {'label': 'Lighting', 'amount': 200}])

        assert bid['bidId'] == bid_id_for('job-1', 'artist-1')
        assert bid['status'] == 'pending'
        assert bid['bidderType'] == 'artist'
        assert bid['currency'] == 'USD'
        assert bid['amountTotal'] == Decimal('1200')
        assert bid['breakdown'][1] == {'label': 'Lighting', 'amount': Decimal('200')}

    def test_studio_bidder_type(self, open_job, other_studio):
        assert place(other_studio)['bidderType'] == 'studio'

    def test_second_bid_is_duplicate(self, open_job, store, artist):
        place(artist)
        with pytest.raises(DuplicateBid):
            place(artist, 900)
        assert len(store.items(config.BIDS_TABLE)) == 1

    def test_admin_cannot_bid(self, open_job, admin):
        with pytest.raises(Forbidden):
            place(admin)

    def test_amount_required(self, open_job, artist):
        with pytest.raises(ValidationError, match='amountTotal'):
            bids.submit_bid(artist, {'jobId': 'job-1'})
        with pytest.raises(ValidationError):
            place(artist, -5)

    def test_missing_job(self, store, artist):
        with pytest.raises(NotFound):
            place(artist)

    @pytest.mark.parametrize('changes', [{'status': 'draft'}, {'assignmentMode': 'direct'}])
    def test_job_not_open_for_bidding(self, open_job, store, artist, changes):
        store.seed(config.JOBS_TABLE, {**open_job, **changes})
        with pytest.raises(ValidationError, match='not open for bidding'):
            place(artist)

    def test_deadline_is_exclusive(self, open_job, artist):
        """A bid stamped exactly at the deadline is already late."""
        with patch('shared.bids.now_iso', return_value=open_job['bidDeadline']):
            with pytest.raises(ValidationError, match='deadline has passed'):
                place(artist)

    def test_job_closing_between_read_and_write(self, open_job, store, monkeypatch, artist):
        real_transact = store.transact_write

        def close_then_write(operations):
            store.seed(config.JOBS_TABLE, {**open_job, 'status': 'under_review'})
            return real_transact(operations)

        monkeypatch.setattr(dynamo, 'transact_write', close_then_write)
        with pytest.raises(ValidationError, match='no longer open'):
            place(artist)
        assert store.items(config.BIDS_TABLE) == []


class TestBidderEdits:

    def test_edit_pending_bid(self, open_job, artist):
        bid = place(artist)
        updated = bids.update_bid(artist, bid['bidId'], {'amountTotal': 800, 'notes': 'Discounted'})
        assert updated['amountTotal'] == Decimal('800')
        assert updated['notes'] == 'Discounted'

    def test_only_bidder_edits(self, open_job, artist, artist_b):
        bid = place(artist)
        with pytest.raises(Forbidden):
            bids.update_bid(artist_b, bid['bidId'], {'amountTotal': 1})

    def test_shortlisted_bid_is_frozen(self, open_job, store, artist):
        seed_bid(store, 'artist-1', status='shortlisted')
        with pytest.raises(ValidationError, match='Only pending'):
            bids.update_bid(artist, bid_id_for('job-1', 'artist-1'), {'amountTotal': 1})

    def test_accepted_bid_is_immutable(self, open_job, store, artist):
        seed_bid(store, 'artist-1', status='accepted')
        bid_id = bid_id_for('job-1', 'artist-1')
        with pytest.raises(ImmutableState):
            bids.update_bid(artist, bid_id, {'amountTotal': 1})
        with pytest.raises(ImmutableState):
            bids.withdraw_bid(artist, bid_id)

    def test_no_edits_after_deadline(self, open_job, artist):
        bid = place(artist)
        with patch('shared.bids.now_iso', return_value=iso_in(days=8)):
            with pytest.raises(ValidationError, match='deadline'):
                bids.update_bid(artist, bid['bidId'], {'amountTotal': 1})

    def test_withdraw_deletes_bid(self, open_job, store, artist):
        bid = place(artist)
        bids.withdraw_bid(artist, bid['bidId'])
        assert store.items(config.BIDS_TABLE) == []

    def test_bid_count_follows_submit_and_withdraw(self, open_job, store, artist, artist_b):
        bid = place(artist)
        place(artist_b)
        assert store.get_item(config.JOBS_TABLE, {'jobId': 'job-1'})['bidCount'] == 2

        bids.withdraw_bid(artist, bid['bidId'])
        assert store.get_item(config.JOBS_TABLE, {'jobId': 'job-1'})['bidCount'] == 1

    def test_empty_edit(self, open_job, artist):
        bid = place(artist)
        with pytest.raises(ValidationError):
            bids.update_bid(artist, bid['bidId'], {})


class TestBidReads:

    def test_job_owner_lists_bids(self, open_job, store, studio, artist):
        seed_bid(store, 'artist-1')
        seed_bid(store, 'artist-2')
        assert len(bids.list_job_bids(studio, 'job-1')) == 2
        with pytest.raises(Forbidden):
            bids.list_job_bids(artist, 'job-1')

    def test_my_bids_carry_job_summary(self, open_job, store, artist):
        seed_bid(store, 'artist-1')
        seed_bid(store, 'artist-2')
        mine = bids.list_my_bids(artist)
        assert len(mine) == 1
        assert mine[0]['job']['title'] == 'Creature animation'

    def test_get_bid_access(self, open_job, store, studio, artist, artist_b):
        seed_bid(store, 'artist-1')
        bid_id = bid_id_for('job-1', 'artist-1')
        assert bids.get_bid(artist, bid_id)['bidderId'] == 'artist-1'
        assert bids.get_bid(studio, bid_id)['bidderId'] == 'artist-1'
        with pytest.raises(Forbidden):
            bids.get_bid(artist_b, bid_id)


class TestBidStatus:

    def test_shortlist_with_notes(self, open_job, store, studio):
        seed_bid(store, 'artist-1')
        result = bids.update_bid_status(
            studio, bid_id_for('job-1', 'artist-1'), {'status': 'shortlisted', 'notes': 'Strong reel'}
        )
        assert result['bid']['status'] == 'shortlisted'
        assert result['bid']['statusNotes'] == 'Strong reel'

    def test_only_owner(self, open_job, store, other_studio):
        seed_bid(store, 'artist-1')
        with pytest.raises(Forbidden):
            bids.update_bid_status(other_studio, bid_id_for('job-1', 'artist-1'), {'status': 'rejected'})

    def test_unknown_status(self, open_job, store, studio):
        seed_bid(store, 'artist-1')
        with pytest.raises(ValidationError):
            bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'withdrawn'})

    def test_same_status_is_invalid(self, open_job, store, studio):
        seed_bid(store, 'artist-1')
        with pytest.raises(InvalidTransition):
            bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'pending'})


class TestAcceptBid:

    def test_accept_creates_contract_and_milestone(self, open_job, store, studio):
        seed_bid(store, 'artist-1', amount='4500')
        seed_bid(store, 'artist-2')
        seed_bid(store, 'artist-3', status='shortlisted')

        result = bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})

        contract = store.get_item(config.CONTRACTS_TABLE, {'contractId': contract_id_for('job-1')})
        assert contract['status'] == 'active'
        assert contract['clientId'] == 'studio-1'
        assert contract['vendorId'] == 'artist-1'
        assert contract['totalAmount'] == Decimal('4500')
        assert contract['deliverablesStatus'] == 'not_started'
        assert contract['endDate'] == open_job['finalDeliveryDate']
        assert result['contract'] == contract

        milestones = store.items(config.MILESTONES_TABLE)
        assert len(milestones) == 1
        assert milestones[0]['status'] == 'pending'
        assert milestones[0]['amount'] == Decimal('4500')
        assert milestones[0]['title'] == 'Project Delivery'
        assert milestones[0]['deliverables'] == ['Final EXRs', 'Breakdown reel']

        job = store.get_item(config.JOBS_TABLE, {'jobId': 'job-1'})
        assert job['status'] == 'awarded'
        assert job['acceptedBidId'] == bid_id_for('job-1', 'artist-1')

        assert statuses(store) == {'artist-1': 'accepted', 'artist-2': 'rejected', 'artist-3': 'rejected'}
        assert result['bid']['status'] == 'accepted'

    def test_accept_from_under_review(self, open_job, store, studio):
        store.seed(config.JOBS_TABLE, {**open_job, 'status': 'under_review'})
        seed_bid(store, 'artist-1')
        bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})
        assert store.get_item(config.JOBS_TABLE, {'jobId': 'job-1'})['status'] == 'awarded'

    def test_one_transaction(self, open_job, store, studio):
        seed_bid(store, 'artist-1')
        seed_bid(store, 'artist-2')
        bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})

        assert len(store.transactions) == 1
        kinds = [type(op).__name__ for op in store.transactions[0]]
        assert kinds == ['Update', 'Put', 'Put', 'Update', 'Update']

    def test_second_accept_is_refused(self, open_job, store, studio):
        seed_bid(store, 'artist-1')
        seed_bid(store, 'artist-2')
        bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})

        with pytest.raises(ImmutableState):
            bids.update_bid_status(studio, bid_id_for('job-1', 'artist-2'), {'status': 'pending'})

    def test_accepted_bid_is_locked(self, open_job, store, studio):
        seed_bid(store, 'artist-1', status='accepted')
        with pytest.raises(ImmutableState):
            bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'rejected'})

    def test_concurrent_accepts_leave_one_winner(self, open_job, store, monkeypatch):
        """Two accepts read the same open job; only the first commit wins."""
        bid_a = seed_bid(store, 'artist-1')
        bid_b = seed_bid(store, 'artist-2')
        real_transact = store.transact_write
        raced = []

        def racing_transact(operations):
            if not raced:
                raced.append(True)
                bids.accept_bid(dict(open_job), dict(bid_b))
            return real_transact(operations)

        monkeypatch.setattr(dynamo, 'transact_write', racing_transact)

        with pytest.raises(ImmutableState):
            bids.accept_bid(dict(open_job), dict(bid_a))

        assert statuses(store) == {'artist-1': 'rejected', 'artist-2': 'accepted'}
        assert len(store.items(config.CONTRACTS_TABLE)) == 1
        assert len(store.items(config.MILESTONES_TABLE)) == 1
        job = store.get_item(config.JOBS_TABLE, {'jobId': 'job-1'})
        assert job['acceptedBidId'] == bid_b['bidId']

    def test_target_changed_mid_accept(self, open_job, store, monkeypatch):
        bid_a = seed_bid(store, 'artist-1')
        real_transact = store.transact_write

        def shortlist_then_write(operations):
            store.seed(config.BIDS_TABLE, {**bid_a, 'status': 'shortlisted'})
            return real_transact(operations)

        monkeypatch.setattr(dynamo, 'transact_write', shortlist_then_write)
        with pytest.raises(Conflict):
            bids.accept_bid(dict(open_job), dict(bid_a))
        assert store.items(config.CONTRACTS_TABLE) == []

    def test_siblings_beyond_one_transaction(self, open_job, store, studio, monkeypatch):
        monkeypatch.setattr(dynamo, 'MAX_TRANSACTION_ITEMS', 6)
        seed_bid(store, 'artist-1')
        for n in range(2, 7):
            seed_bid(store, f'artist-{n}')

        bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})

        assert len(store.transactions) == 1
        assert len(store.transactions[0]) == 6
        assert statuses(store)['artist-1'] == 'accepted'
        assert [s for bidder, s in statuses(store).items() if bidder != 'artist-1'] == ['rejected'] * 5

    def test_rejected_bid_can_be_accepted(self, open_job, store, studio):
        seed_bid(store, 'artist-1', status='rejected')
        seed_bid(store, 'artist-2')

        result = bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})

        assert result['contract']['vendorId'] == 'artist-1'
        assert statuses(store) == {'artist-1': 'accepted', 'artist-2': 'rejected'}

    def test_bid_submitted_mid_accept_forces_retry(self, open_job, store, studio, monkeypatch):
        """A bid landing between the sibling read and the commit must not stay pending."""
        seed_bid(store, 'artist-1')
        seed_bid(store, 'artist-2')
        real_transact = store.transact_write
        raced = []

        def submit_then_write(operations):
            if not raced:
                raced.append(True)
                place(Caller('artist-3', ['artist']))
            return real_transact(operations)

        monkeypatch.setattr(dynamo, 'transact_write', submit_then_write)

        with pytest.raises(Conflict):
            bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})

        assert store.items(config.CONTRACTS_TABLE) == []
        job = store.get_item(config.JOBS_TABLE, {'jobId': 'job-1'})
        assert job['status'] == 'open'
        assert 'acceptedBidId' not in job
        assert statuses(store)['artist-3'] == 'pending'

        bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})
        assert statuses(store) == {'artist-1': 'accepted', 'artist-2': 'rejected', 'artist-3': 'rejected'}

    def test_failed_overflow_rejections_are_logged(self, open_job, store, studio, monkeypatch, caplog):
        monkeypatch.setattr(dynamo, 'MAX_TRANSACTION_ITEMS', 6)
        for n in range(1, 8):
            seed_bid(store, f'artist-{n}')

        def throttled(*args, **kwargs):
            raise ClientError(
                {'Error': {'Code': 'ProvisionedThroughputExceededException', 'Message': 'Rate exceeded'}},
                'UpdateItem',
            )

        monkeypatch.setattr(dynamo, 'update_item', throttled)
        with caplog.at_level(logging.ERROR, logger='marketplace'):
            result = bids.update_bid_status(studio, bid_id_for('job-1', 'artist-1'), {'status': 'accepted'})

        assert result['bid']['status'] == 'accepted'
        assert store.get_item(config.JOBS_TABLE, {'jobId': 'job-1'})['status'] == 'awarded'
        errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        for n in range(4, 8):
            assert bid_id_for('job-1', f'artist-{n}') in errors[0]
        assert [statuses(store)[f'artist-{n}'] for n in range(4, 8)] == ['pending'] * 4

"""
Shared fixtures: an in-memory DynamoDB stand-in patched over shared.dynamo,
callers for each role, and API Gateway event builders.
"""
import copy
import json
import os
import sys
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

# Table names must be set before shared.config is imported
os.environ.setdefault('AWS_REGION', 'us-east-1')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')
for _name in ('JOBS', 'BIDS', 'CONTRACTS', 'MILESTONES', 'DELIVERABLES', 'REVIEWS', 'PROFILES'):
    os.environ.setdefault(f'{_name}_TABLE', f'test-{_name.lower()}')
os.environ.setdefault('MEDIA_BUCKET', 'test-media-bucket')

# Add src to path for import
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from shared import dynamo  # noqa: E402
from shared.auth import Caller  # noqa: E402
from shared.config import config  # noqa: E402
from shared.utils import format_timestamp  # noqa: E402


KEY_ATTRIBUTES = {
    config.JOBS_TABLE: 'jobId',
    config.BIDS_TABLE: 'bidId',
    config.CONTRACTS_TABLE: 'contractId',
    config.MILESTONES_TABLE: 'milestoneId',
    config.DELIVERABLES_TABLE: 'deliverableId',
    config.REVIEWS_TABLE: 'reviewId',
    config.PROFILES_TABLE: 'userId',
}


class FakeStore:
    """
    Dict-backed tables with the same call signatures as shared.dynamo.

    Conditions are evaluated with Filter.matches against the stored item
    (an absent item is evaluated as {}), and transactions apply all or
    nothing, reporting per-operation cancellation reasons.
    """

    def __init__(self):
        self.tables = defaultdict(dict)
        self.transactions = []
        self.index_snapshot = None

    # ---- helpers -----------------------------------------------------------

    def _key(self, table, key_or_item):
        return key_or_item[KEY_ATTRIBUTES[table]]

    def _holds(self, table, key_value, condition):
        if condition is None:
            return True
        return condition.matches(self.tables[table].get(key_value, {}))

    def items(self, table):
        return [copy.deepcopy(item) for item in self.tables[table].values()]

    def lag_indexes(self):
        """Freeze what queries see at the current table state; reads by key stay current."""
        self.index_snapshot = copy.deepcopy(self.tables)

    def _indexed(self, table):
        if self.index_snapshot is None:
            return self.items(table)
        return [copy.deepcopy(item) for item in self.index_snapshot[table].values()]

    def seed(self, table, item):
        self.tables[table][self._key(table, item)] = copy.deepcopy(item)
        return item

    def _apply_update(self, table, key, set_values, remove, add):
        key_value = self._key(table, key)
        item = copy.deepcopy(self.tables[table].get(key_value)) or dict(key)
        item.update(copy.deepcopy(set_values or {}))
        for attr in remove or ():
            item.pop(attr, None)
        for attr, amount in (add or {}).items():
            item[attr] = item.get(attr, 0) + amount
        self.tables[table][key_value] = item
        return copy.deepcopy(item)

    # ---- shared.dynamo surface ----------------------------------------------

    def get_item(self, table, key):
        item = self.tables[table].get(self._key(table, key))
        return copy.deepcopy(item) if item is not None else None

    def put_item(self, table, item, condition=None):
        key_value = self._key(table, item)
        if not self._holds(table, key_value, condition):
            raise dynamo.ConditionFailed(f"Condition failed writing to {table}")
        self.tables[table][key_value] = copy.deepcopy(item)
        return item

    def update_item(self, table, key, set_values=None, remove=(), add=None, condition=None):
        if not self._holds(table, self._key(table, key), condition):
            raise dynamo.ConditionFailed(f"Condition failed updating {table}")
        return self._apply_update(table, key, set_values, remove, add)

    def delete_item(self, table, key, condition=None):
        key_value = self._key(table, key)
        if not self._holds(table, key_value, condition):
            raise dynamo.ConditionFailed(f"Condition failed deleting from {table}")
        return self.tables[table].pop(key_value, None)

    def query(self, table, index_name, key_name, key_value, filter_expression=None, scan_forward=True):
        return [
            item for item in self._indexed(table)
            if item.get(key_name) == key_value
            and (filter_expression is None or filter_expression.matches(item))
        ]

    def scan(self, table, filter_expression=None):
        return [
            item for item in self.items(table)
            if filter_expression is None or filter_expression.matches(item)
        ]

    def batch_delete(self, table, keys):
        for key in keys:
            self.tables[table].pop(self._key(table, key), None)
        return len(keys)

    def transact_write(self, operations):
        if len(operations) > dynamo.MAX_TRANSACTION_ITEMS:
            raise ValueError('Transactions are limited to 100 items')
        self.transactions.append(operations)

        reasons = []
        for op in operations:
            key = op.item if isinstance(op, dynamo.Put) else op.key
            held = self._holds(op.table_name, self._key(op.table_name, key), op.condition)
            reasons.append('None' if held else 'ConditionalCheckFailed')
        if 'ConditionalCheckFailed' in reasons:
            raise dynamo.TransactionConflict(reasons)

        for op in operations:
            if isinstance(op, dynamo.Put):
                self.tables[op.table_name][self._key(op.table_name, op.item)] = copy.deepcopy(op.item)
            elif isinstance(op, dynamo.Update):
                self._apply_update(op.table_name, op.key, op.set_values, op.remove, op.add)
            elif isinstance(op, dynamo.Delete):
                self.tables[op.table_name].pop(self._key(op.table_name, op.key), None)


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    for name in ('get_item', 'put_item', 'update_item', 'delete_item',
                 'query', 'scan', 'batch_delete', 'transact_write'):
        monkeypatch.setattr(dynamo, name, getattr(fake, name))
    return fake


@pytest.fixture
def s3(monkeypatch):
    from shared import media
    client = MagicMock()
    client.generate_presigned_url.return_value = 'https://signed.example.com/object'
    monkeypatch.setattr(media, 's3_client', client)
    return client


# ---- callers and time --------------------------------------------------------

@pytest.fixture
def studio():
    return Caller('studio-1', ['studio'])


@pytest.fixture
def other_studio():
    return Caller('studio-2', ['studio'])


@pytest.fixture
def artist():
    return Caller('artist-1', ['artist'])


@pytest.fixture
def artist_b():
    return Caller('artist-2', ['artist'])


@pytest.fixture
def admin():
    return Caller('admin-1', ['admin'])


def iso_in(**delta):
    """Stored timestamp offset from now."""
    return format_timestamp(datetime.now(timezone.utc) + timedelta(**delta))


# ---- API Gateway events --------------------------------------------------------

def api_event(user_id=None, groups='', body=None, path=None, query=None):
    event = {
        'httpMethod': 'GET',
        'pathParameters': path,
        'queryStringParameters': query,
        'body': json.dumps(body) if body is not None else None,
        'requestContext': {},
    }
    if user_id:
        event['requestContext'] = {
            'authorizer': {'claims': {'sub': user_id, 'cognito:groups': groups}}
        }
    return event


def response_body(response):
    return json.loads(response['body'])

"""
DynamoDB utility functions shared by every controller.

Reads and single-item writes go through the table resource; multi-item
writes go through transact_write(), which renders Put/Update/Delete/
ConditionCheck operations for the low-level client.
"""
import boto3
from typing import List, Dict, Any, Optional, Iterable, Sequence
from botocore.exceptions import ClientError
from boto3.dynamodb.conditions import ConditionExpressionBuilder, Key
from boto3.dynamodb.types import TypeSerializer
from .config import config
from .filters import Filter
from .logging import logger

dynamodb = boto3.resource('dynamodb', region_name=config.AWS_REGION)
client = boto3.client('dynamodb', region_name=config.AWS_REGION)

_serializer = TypeSerializer()

# DynamoDB hard limit on items per transaction
MAX_TRANSACTION_ITEMS = 100


class ConditionFailed(Exception):
    """A single-item conditional write was rejected."""


class TransactionConflict(Exception):
    """
    A transaction was cancelled.

    reasons holds one cancellation code per operation, in request order
    ('None' for operations that did not fail).
    """

    def __init__(self, reasons: List[str]):
        super().__init__(f"Transaction cancelled: {reasons}")
        self.reasons = reasons

    def failed_at(self, index: int) -> bool:
        return index < len(self.reasons) and self.reasons[index] == 'ConditionalCheckFailed'


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


# =============================================================================
# Expression rendering
# =============================================================================

class _Expression:
    """Accumulates expression placeholders for one request."""

    def __init__(self):
        self.names: Dict[str, str] = {}
        self.values: Dict[str, Any] = {}
        self._builder = ConditionExpressionBuilder()

    def condition(self, condition, is_key_condition: bool = False) -> str:
        if isinstance(condition, Filter):
            condition = condition.to_condition()
        built = self._builder.build_expression(condition, is_key_condition=is_key_condition)
        self.names.update(built.attribute_name_placeholders)
        self.values.update(built.attribute_value_placeholders)
        return built.condition_expression

    def update(
        self,
        set_values: Optional[Dict[str, Any]] = None,
        remove: Iterable[str] = (),
        add: Optional[Dict[str, Any]] = None
    ) -> str:
        clauses = []

        def name_for(attr):
            name = f"#u{len(self.names)}"
            self.names[name] = attr
            return name

        def value_for(value):
            placeholder = f":u{len(self.values)}"
            self.values[placeholder] = value
            return placeholder

        if set_values:
            parts = [f"{name_for(attr)} = {value_for(value)}" for attr, value in set_values.items()]
            clauses.append('SET ' + ', '.join(parts))
        remove = list(remove)
        if remove:
            clauses.append('REMOVE ' + ', '.join(name_for(attr) for attr in remove))
        if add:
            parts = [f"{name_for(attr)} {value_for(value)}" for attr, value in add.items()]
            clauses.append('ADD ' + ', '.join(parts))

        if not clauses:
            raise ValueError('update needs at least one SET, REMOVE or ADD clause')
        return ' '.join(clauses)

    def apply(self, params: dict, serialize: bool = False) -> dict:
        if self.names:
            params['ExpressionAttributeNames'] = dict(self.names)
        if self.values:
            params['ExpressionAttributeValues'] = (
                _serialize(self.values) if serialize else dict(self.values)
            )
        return params


def _serialize(item: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _serializer.serialize(v) for k, v in item.items()}


# =============================================================================
# Single-item operations
# =============================================================================

def get_item(table_name: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Get a single item from DynamoDB."""
    try:
        response = dynamodb.Table(table_name).get_item(Key=key)
        return response.get('Item')
    except ClientError as e:
        logger.error(f"Error getting item from {table_name}: {e}")
        raise


def put_item(table_name: str, item: Dict[str, Any], condition: Optional[Filter] = None) -> Dict[str, Any]:
    """
    Put an item, optionally guarded by a condition.

    Raises:
        ConditionFailed: the condition did not hold
    """
    params = {'Item': item}
    if condition is not None:
        expr = _Expression()
        params['ConditionExpression'] = expr.condition(condition)
        expr.apply(params)

    try:
        dynamodb.Table(table_name).put_item(**params)
        return item
    except ClientError as e:
        if _error_code(e) == 'ConditionalCheckFailedException':
            raise ConditionFailed(f"Condition failed writing to {table_name}") from e
        logger.error(f"Error putting item to {table_name}: {e}")
        raise


def update_item(
    table_name: str,
    key: Dict[str, Any],
    set_values: Optional[Dict[str, Any]] = None,
    remove: Iterable[str] = (),
    add: Optional[Dict[str, Any]] = None,
    condition: Optional[Filter] = None
) -> Dict[str, Any]:
    """
    Update an item in DynamoDB and return the new image.

    Raises:
        ConditionFailed: the condition did not hold
    """
    expr = _Expression()
    params = {
        'Key': key,
        'UpdateExpression': expr.update(set_values, remove, add),
        'ReturnValues': 'ALL_NEW'
    }
    if condition is not None:
        params['ConditionExpression'] = expr.condition(condition)
    expr.apply(params)

    try:
        response = dynamodb.Table(table_name).update_item(**params)
        return response.get('Attributes', {})
    except ClientError as e:
        if _error_code(e) == 'ConditionalCheckFailedException':
            raise ConditionFailed(f"Condition failed updating {table_name}") from e
        logger.error(f"Error updating item in {table_name}: {e}")
        raise


def delete_item(
    table_name: str,
    key: Dict[str, Any],
    condition: Optional[Filter] = None
) -> Optional[Dict[str, Any]]:
    """
    Delete an item and return its old image (None if nothing was there).

    Raises:
        ConditionFailed: the condition did not hold
    """
    params = {'Key': key, 'ReturnValues': 'ALL_OLD'}
    if condition is not None:
        expr = _Expression()
        params['ConditionExpression'] = expr.condition(condition)
        expr.apply(params)

    try:
        response = dynamodb.Table(table_name).delete_item(**params)
        return response.get('Attributes')
    except ClientError as e:
        if _error_code(e) == 'ConditionalCheckFailedException':
            raise ConditionFailed(f"Condition failed deleting from {table_name}") from e
        logger.error(f"Error deleting item from {table_name}: {e}")
        raise


# =============================================================================
# Multi-item reads
# =============================================================================

def query(
    table_name: str,
    index_name: Optional[str],
    key_name: str,
    key_value: Any,
    filter_expression: Optional[Filter] = None,
    scan_forward: bool = True
) -> List[Dict[str, Any]]:
    """
    Query a table or GSI by partition key equality, following pagination.

    Args:
        table_name: Name of the DynamoDB table
        index_name: Optional GSI name
        key_name: Partition key attribute of the table/index
        key_value: Partition key value
        filter_expression: Optional typed filter applied server-side
        scan_forward: True for ascending, False for descending

    Returns:
        List of items matching the query
    """
    expr = _Expression()
    params = {
        'KeyConditionExpression': expr.condition(Key(key_name).eq(key_value), is_key_condition=True),
        'ScanIndexForward': scan_forward
    }
    if index_name:
        params['IndexName'] = index_name
    if filter_expression is not None:
        params['FilterExpression'] = expr.condition(filter_expression)
    expr.apply(params)

    return _paginate(table_name, 'query', params)


def scan(table_name: str, filter_expression: Optional[Filter] = None) -> List[Dict[str, Any]]:
    """Scan a whole table, optionally filtered, following pagination."""
    params = {}
    if filter_expression is not None:
        expr = _Expression()
        params['FilterExpression'] = expr.condition(filter_expression)
        expr.apply(params)

    return _paginate(table_name, 'scan', params)


def _paginate(table_name: str, operation: str, params: dict) -> List[Dict[str, Any]]:
    table = dynamodb.Table(table_name)
    items = []
    try:
        while True:
            response = getattr(table, operation)(**params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            params['ExclusiveStartKey'] = last_key
    except ClientError as e:
        logger.error(f"Error running {operation} on {table_name}: {e}")
        raise


# =============================================================================
# Multi-item writes
# =============================================================================

def batch_delete(table_name: str, keys: Sequence[Dict[str, Any]]) -> int:
    """
    Delete many items using batch_write_item.
    Batching (max 25 items per request) is handled by the batch writer.
    """
    if not keys:
        return 0
    with dynamodb.Table(table_name).batch_writer() as batch:
        for key in keys:
            batch.delete_item(Key=key)
    logger.info(f"Deleted {len(keys)} items from {table_name}")
    return len(keys)


class Put:
    def __init__(self, table_name: str, item: Dict[str, Any], condition: Optional[Filter] = None):
        self.table_name = table_name
        self.item = item
        self.condition = condition

    def render(self) -> dict:
        params = {'TableName': self.table_name, 'Item': _serialize(self.item)}
        if self.condition is not None:
            expr = _Expression()
            params['ConditionExpression'] = expr.condition(self.condition)
            expr.apply(params, serialize=True)
        return {'Put': params}


class Update:
    def __init__(
        self,
        table_name: str,
        key: Dict[str, Any],
        set_values: Optional[Dict[str, Any]] = None,
        remove: Iterable[str] = (),
        add: Optional[Dict[str, Any]] = None,
        condition: Optional[Filter] = None
    ):
        self.table_name = table_name
        self.key = key
        self.set_values = set_values or {}
        self.remove = tuple(remove)
        self.add = add or {}
        self.condition = condition

    def render(self) -> dict:
        expr = _Expression()
        params = {
            'TableName': self.table_name,
            'Key': _serialize(self.key),
            'UpdateExpression': expr.update(self.set_values, self.remove, self.add)
        }
        if self.condition is not None:
            params['ConditionExpression'] = expr.condition(self.condition)
        expr.apply(params, serialize=True)
        return {'Update': params}


class Delete:
    def __init__(self, table_name: str, key: Dict[str, Any], condition: Optional[Filter] = None):
        self.table_name = table_name
        self.key = key
        self.condition = condition

    def render(self) -> dict:
        params = {'TableName': self.table_name, 'Key': _serialize(self.key)}
        if self.condition is not None:
            expr = _Expression()
            params['ConditionExpression'] = expr.condition(self.condition)
            expr.apply(params, serialize=True)
        return {'Delete': params}


class ConditionCheck:
    def __init__(self, table_name: str, key: Dict[str, Any], condition: Filter):
        self.table_name = table_name
        self.key = key
        self.condition = condition

    def render(self) -> dict:
        expr = _Expression()
        params = {
            'TableName': self.table_name,
            'Key': _serialize(self.key),
            'ConditionExpression': expr.condition(self.condition)
        }
        expr.apply(params, serialize=True)
        return {'ConditionCheck': params}


def transact_write(operations: Sequence[Any]) -> None:
    """
    Apply all operations atomically with TransactWriteItems.

    Raises:
        TransactionConflict: any condition failed (nothing was written)
    """
    if not operations:
        return
    if len(operations) > MAX_TRANSACTION_ITEMS:
        raise ValueError(f"Transactions are limited to {MAX_TRANSACTION_ITEMS} items")

    try:
        client.transact_write_items(TransactItems=[op.render() for op in operations])
    except ClientError as e:
        if _error_code(e) == 'TransactionCanceledException':
            reasons = [r.get('Code', 'None') for r in e.response.get('CancellationReasons', [])]
            logger.warning(f"Transaction cancelled: {reasons}")
            raise TransactionConflict(reasons) from e
        logger.error(f"Transaction error: {e}")
        raise

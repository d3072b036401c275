from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator

from boto3.dynamodb.types import TypeSerializer

from .client import dynamodb_client, table_resource
from .errors import DdbInternal
from .pagination import decode_next_token, encode_next_token
from .retry import RetryPolicy, ddb_call


_serializer = TypeSerializer()


def _partition_of(key_condition_expression: Any) -> str | None:
    """Partition value a boto3 key condition queries (the left side of an AND)."""
    expr = key_condition_expression.get_expression()
    if expr["operator"] == "AND":
        return _partition_of(expr["values"][0])
    if expr["operator"] == "=":
        return str(expr["values"][1])
    return None


def _serialize_item(item: dict[str, Any]) -> dict[str, Any]:
    # DynamoDB client expects AttributeValue shape; TypeSerializer produces {'S': '...'} etc.
    return {k: _serializer.serialize(v) for k, v in item.items()}


def _conditional_kwargs(
    *,
    condition_expression: str | None,
    expression_attribute_names: dict[str, str] | None,
    expression_attribute_values: dict[str, Any] | None,
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    if condition_expression:
        kwargs["ConditionExpression"] = condition_expression
    if expression_attribute_names:
        kwargs["ExpressionAttributeNames"] = expression_attribute_names
    if expression_attribute_values:
        kwargs["ExpressionAttributeValues"] = expression_attribute_values
    return kwargs


@dataclass(slots=True)
class Page:
    items: list[dict[str, Any]]
    next_token: str | None


class DynamoTable:
    def __init__(self, *, table_name: str):
        self.table_name = str(table_name)
        self._table = table_resource(self.table_name)
        self._client = dynamodb_client()

    # --- basic operations ---

    def get_item(self, *, key: dict[str, Any]) -> dict[str, Any] | None:
        def _op():
            # Workflow preconditions are always checked against the latest write.
            resp = self._table.get_item(Key=key, ConsistentRead=True)
            return resp.get("Item")

        return ddb_call("GetItem", _op, table_name=self.table_name, key=key)

    def put_item(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        def _op():
            return self._table.put_item(
                Item=item,
                **_conditional_kwargs(
                    condition_expression=condition_expression,
                    expression_attribute_names=expression_attribute_names,
                    expression_attribute_values=expression_attribute_values,
                ),
            )

        key = {"pk": item.get("pk"), "sk": item.get("sk")}
        return ddb_call("PutItem", _op, table_name=self.table_name, key=key)

    def delete_item(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        def _op():
            return self._table.delete_item(
                Key=key,
                **_conditional_kwargs(
                    condition_expression=condition_expression,
                    expression_attribute_names=expression_attribute_names,
                    expression_attribute_values=expression_attribute_values,
                ),
            )

        return ddb_call("DeleteItem", _op, table_name=self.table_name, key=key)

    # --- query/pagination ---

    def query_page(
        self,
        *,
        key_condition_expression: Any,
        index_name: str | None = None,
        limit: int = 50,
        scan_index_forward: bool = False,
        filter_expression: Any | None = None,
        next_token: str | None = None,
    ) -> Page:
        lim = max(1, min(500, int(limit or 50)))
        scope = f"{index_name or 'table'}:{_partition_of(key_condition_expression)}"
        lek = decode_next_token(next_token, scope=scope) if next_token else None

        def _op():
            kwargs: dict[str, Any] = {
                "KeyConditionExpression": key_condition_expression,
                "ScanIndexForward": bool(scan_index_forward),
                "Limit": lim,
            }
            if index_name:
                kwargs["IndexName"] = index_name
            if filter_expression is not None:
                kwargs["FilterExpression"] = filter_expression
            # Important: only pass ExclusiveStartKey when present.
            if isinstance(lek, dict) and lek:
                kwargs["ExclusiveStartKey"] = lek
            return self._table.query(**kwargs)

        resp = ddb_call("Query", _op, table_name=self.table_name)
        items = resp.get("Items") or []
        out_lek = resp.get("LastEvaluatedKey")
        return Page(items=items, next_token=encode_next_token(out_lek, scope=scope))

    def query_all(
        self,
        *,
        key_condition_expression: Any,
        index_name: str | None = None,
        scan_index_forward: bool = False,
        filter_expression: Any | None = None,
        max_pages: int = 50,
    ) -> list[dict[str, Any]]:
        """Drain every page of a query (used for bounded sibling snapshots)."""
        return list(
            self._iter_query(
                key_condition_expression=key_condition_expression,
                index_name=index_name,
                scan_index_forward=scan_index_forward,
                filter_expression=filter_expression,
                max_pages=max_pages,
            )
        )

    def _iter_query(self, *, max_pages: int, **query_kwargs: Any) -> Iterator[dict[str, Any]]:
        token: str | None = None
        for _ in range(max(1, int(max_pages))):
            pg = self.query_page(limit=500, next_token=token, **query_kwargs)
            yield from pg.items
            token = pg.next_token
            if not token:
                return

    # --- transactions ---

    def transact_write(
        self,
        *,
        puts: Iterable[dict[str, Any]] = (),
        deletes: Iterable[dict[str, Any]] = (),
        retry_policy: RetryPolicy | None = None,
    ) -> dict[str, Any]:
        # Each put/delete entry should already be in DynamoDB client shape.
        items: list[dict[str, Any]] = [{"Put": p} for p in puts]
        items.extend({"Delete": d} for d in deletes)

        if not items:
            return {"ok": True}

        def _op():
            return self._client.transact_write_items(TransactItems=items)

        # transaction conflicts are mapped retryable by retry layer.
        return ddb_call(
            "TransactWriteItems",
            _op,
            table_name=self.table_name,
            retry_policy=retry_policy or RetryPolicy(max_attempts=8, base_delay_s=0.08, max_delay_s=2.0),
        )

    # Convenience builders for transact items (client shape)

    def tx_put(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return {
            "TableName": self.table_name,
            "Item": _serialize_item(item),
            **_conditional_kwargs(
                condition_expression=condition_expression,
                expression_attribute_names=expression_attribute_names,
                expression_attribute_values=_serialize_item(expression_attribute_values)
                if expression_attribute_values
                else None,
            ),
        }

    def tx_delete(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return {
            "TableName": self.table_name,
            "Key": _serialize_item(key),
            **_conditional_kwargs(
                condition_expression=condition_expression,
                expression_attribute_names=expression_attribute_names,
                expression_attribute_values=_serialize_item(expression_attribute_values)
                if expression_attribute_values
                else None,
            ),
        }


def get_main_table() -> DynamoTable:
    from ...settings import settings

    if not settings.ddb_table_name:
        raise DdbInternal(message="DDB_TABLE_NAME is not set", operation="Config")
    return DynamoTable(table_name=settings.ddb_table_name)

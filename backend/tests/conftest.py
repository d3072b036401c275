from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure `backend/` is on sys.path so `import offerflow.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from offerflow.db.dynamodb.errors import DdbConflict, DdbValidation  # noqa: E402
from offerflow.db.dynamodb.table import Page  # noqa: E402

_INDEX_KEYS = {
    None: ("pk", "sk"),
    "GSI1": ("gsi1pk", "gsi1sk"),
    "GSI2": ("gsi2pk", "gsi2sk"),
    "GSI3": ("gsi3pk", "gsi3sk"),
}


def _condition_holds(
    current: dict[str, Any] | None,
    condition_expression: str | None,
    names: dict[str, str] | None,
    values: dict[str, Any] | None,
) -> bool:
    if not condition_expression:
        return True
    if condition_expression == "attribute_not_exists(pk)":
        return current is None
    if condition_expression == "#v = :expected_version":
        attr = (names or {}).get("#v", "version")
        expected = (values or {}).get(":expected_version")
        return current is not None and current.get(attr) == expected
    raise NotImplementedError(f"FakeTable does not understand condition: {condition_expression}")


def _key_matches(cond: Any, item: dict[str, Any]) -> bool:
    # boto3 conditions expose {"operator", "values"} via get_expression().
    expr = cond.get_expression()
    op = expr["operator"]
    vals = expr["values"]
    if op == "AND":
        return all(_key_matches(c, item) for c in vals)
    actual = item.get(vals[0].name)
    if actual is None:
        return False
    if op == "=":
        return actual == vals[1]
    if op == "begins_with":
        return str(actual).startswith(str(vals[1]))
    raise NotImplementedError(f"FakeTable does not understand key operator: {op}")


class FakeTable:
    """
    In-memory stand-in for DynamoTable used by repositories.

    Supports the conditional writes and GSI queries the workflow relies on:
    create-if-absent, version checks, atomic multi-item transactions, and
    equality / begins_with key conditions on the base table and GSI1..GSI3.
    """

    table_name = "Fake"

    def __init__(self):
        # Keyed by (pk, sk)
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self.transactions = 0
        # When set, GSI queries read this frozen copy instead of live items.
        self._index_view: dict[tuple[str, str], dict[str, Any]] | None = None

    @staticmethod
    def _k(key: dict[str, Any]) -> tuple[str, str]:
        return str(key.get("pk") or ""), str(key.get("sk") or "")

    def _conflict(self, operation: str, key: tuple[str, str]) -> DdbConflict:
        return DdbConflict(
            message="DynamoDB conditional check failed",
            operation=operation,
            table_name=self.table_name,
            key={"pk": key[0], "sk": key[1]},
        )

    # --- basic operations ---

    def get_item(self, *, key: dict[str, Any]) -> dict[str, Any] | None:
        hit = self.items.get(self._k(key))
        return copy.deepcopy(hit) if hit is not None else None

    def put_item(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        k = self._k(item)
        if not _condition_holds(
            self.items.get(k), condition_expression, expression_attribute_names, expression_attribute_values
        ):
            raise self._conflict("PutItem", k)
        self.items[k] = copy.deepcopy(item)
        return {}

    def delete_item(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        k = self._k(key)
        if not _condition_holds(
            self.items.get(k), condition_expression, expression_attribute_names, expression_attribute_values
        ):
            raise self._conflict("DeleteItem", k)
        self.items.pop(k, None)
        return {}

    # --- queries ---

    def _query(self, *, key_condition_expression: Any, index_name: str | None, scan_index_forward: bool) -> list:
        pk_attr, sk_attr = _INDEX_KEYS[index_name]
        source = self.items if index_name is None or self._index_view is None else self._index_view
        hits = [
            it
            for it in source.values()
            if it.get(pk_attr) is not None and _key_matches(key_condition_expression, it)
        ]
        hits.sort(key=lambda it: str(it.get(sk_attr) or ""), reverse=not scan_index_forward)
        return [copy.deepcopy(it) for it in hits]

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
        hits = self._query(
            key_condition_expression=key_condition_expression,
            index_name=index_name,
            scan_index_forward=scan_index_forward,
        )
        start = int(next_token or 0)
        end = start + int(limit)
        return Page(items=hits[start:end], next_token=str(end) if end < len(hits) else None)

    def query_all(
        self,
        *,
        key_condition_expression: Any,
        index_name: str | None = None,
        scan_index_forward: bool = False,
        filter_expression: Any | None = None,
        max_pages: int = 50,
    ) -> list[dict[str, Any]]:
        return self._query(
            key_condition_expression=key_condition_expression,
            index_name=index_name,
            scan_index_forward=scan_index_forward,
        )

    # --- transactions ---

    def tx_put(self, *, item: dict[str, Any], **conditions: Any) -> dict[str, Any]:
        return {"Item": copy.deepcopy(item), **conditions}

    def tx_delete(self, *, key: dict[str, Any], **conditions: Any) -> dict[str, Any]:
        return {"Key": dict(key), **conditions}

    def transact_write(self, *, puts=(), deletes=(), retry_policy=None) -> dict[str, Any]:
        ops = [("put", p) for p in puts] + [("delete", d) for d in deletes]
        keys = [self._k(op["Item"] if kind == "put" else op["Key"]) for kind, op in ops]
        if len(set(keys)) != len(keys):
            raise DdbValidation(
                message="Transaction request cannot include multiple operations on one item",
                operation="TransactWriteItems",
            )

        # All-or-nothing: check every condition before applying anything.
        for (_, op), k in zip(ops, keys):
            if not _condition_holds(
                self.items.get(k),
                op.get("condition_expression"),
                op.get("expression_attribute_names"),
                op.get("expression_attribute_values"),
            ):
                raise self._conflict("TransactWriteItems", k)

        for (kind, op), k in zip(ops, keys):
            if kind == "put":
                self.items[k] = copy.deepcopy(op["Item"])
            else:
                self.items.pop(k, None)
        self.transactions += 1
        return {"ok": True}

    # --- test helpers ---

    def lag_indexes(self) -> None:
        """Freeze what GSI queries see, as if index propagation stalled here."""
        self._index_view = copy.deepcopy(self.items)


    def rows(self, pk_prefix: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(v) for (pk, _), v in self.items.items() if pk.startswith(pk_prefix)]


@pytest.fixture()
def fake_table(monkeypatch):
    t = FakeTable()
    import offerflow.repositories.advisor_links_repo as advisor_links_repo
    import offerflow.repositories.coinvestment_offers_repo as coinvestment_offers_repo
    import offerflow.repositories.coinvestment_opportunities_repo as coinvestment_opportunities_repo
    import offerflow.repositories.ledger_repo as ledger_repo
    import offerflow.repositories.offers_repo as offers_repo
    import offerflow.repositories.outbox_repo as outbox_repo
    import offerflow.repositories.recommendations_repo as recommendations_repo

    for mod in (
        advisor_links_repo,
        coinvestment_offers_repo,
        coinvestment_opportunities_repo,
        ledger_repo,
        offers_repo,
        outbox_repo,
        recommendations_repo,
    ):
        monkeypatch.setattr(mod, "get_main_table", lambda: t)
    return t


@pytest.fixture(autouse=True)
def _fresh_advisor_cache():
    from offerflow.modules.identity import advisors

    advisors.clear_cache()
    yield
    advisors.clear_cache()


@pytest.fixture()
def link_advisor(fake_table):
    """Assign an advisor: link_advisor("investor", "inv_1", "adv_a")."""
    from offerflow.modules.identity import advisors

    def _link(kind: str, party_id: str, advisor_id: str) -> dict[str, Any]:
        return advisors.assign_advisor(kind=kind, party_id=party_id, advisor_id=advisor_id)

    return _link

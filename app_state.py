"""
In-process application state for the admin panel.

One AdminState holds the locally observable copy of every collection and of
the time rules, fed by store subscriptions, plus loading flags and
per-record busy flags. All mutation goes through the reducer methods below.
Read routes take data from here once a feed is live and fall back to the
store while it is still loading or after it failed.
"""
import copy
import logging
import threading
from contextlib import contextmanager
from functools import partial
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from database import SETTINGS_COLLECTION, DocumentStore, Subscription
from errors import UpdateInProgress
from schemas import COLLECTIONS, TIME_RULES_DOC, Order, TimeRule, TimeRulesConfig

logger = logging.getLogger("grocery-admin.state")

FEEDS = list(COLLECTIONS.values()) + [TIME_RULES_DOC]


class AdminState:
    def __init__(self):
        self._lock = threading.RLock()
        self.collections: Dict[str, List[dict]] = {name: [] for name in COLLECTIONS.values()}
        self.orders: Dict[str, Order] = {}
        self.time_rules: TimeRulesConfig = {}
        self.loading: Dict[str, bool] = {name: True for name in FEEDS}
        self.errors: Dict[str, str] = {}
        self._busy: Set[Tuple[str, str]] = set()
        self._subscriptions: List[Subscription] = []

    # ---------- Reducers ----------
    def replace_collection(self, name: str, docs: List[dict]) -> None:
        with self._lock:
            if name == COLLECTIONS["orders"]:
                orders = {}
                for doc in docs:
                    try:
                        order = Order.model_validate(doc)
                    except ValidationError as exc:
                        logger.warning("Ignoring malformed order %s: %s", doc.get("id"), exc)
                        continue
                    orders[order.id] = order
                self.orders = orders
            self.collections[name] = docs
            self.loading[name] = False
            self.errors.pop(name, None)

    def replace_time_rules(self, docs: List[dict]) -> None:
        rules: TimeRulesConfig = {}
        for doc in docs:
            for slot_id, rule in doc.items():
                if slot_id == "id":
                    continue
                try:
                    rules[slot_id] = TimeRule.model_validate(rule)
                except ValidationError as exc:
                    logger.warning("Ignoring malformed time rule for slot %s: %s", slot_id, exc)
        with self._lock:
            self.time_rules = rules
            self.loading[TIME_RULES_DOC] = False
            self.errors.pop(TIME_RULES_DOC, None)

    def subscription_failed(self, name: str, exc: Exception) -> None:
        # Stop loading but keep whatever was delivered last.
        with self._lock:
            self.loading[name] = False
            self.errors[name] = str(exc)

    def set_time_rules(self, rules: TimeRulesConfig) -> None:
        with self._lock:
            self.time_rules = dict(rules)

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self.orders.get(order_id)
            return order.model_copy(deep=True) if order is not None else None

    def upsert_order(self, order: Order) -> None:
        with self._lock:
            self.orders[order.id] = order.model_copy(deep=True)
            self._sync_order_doc(order)

    def restore_order(self, snapshot: Optional[Order], order_id: str) -> None:
        with self._lock:
            if snapshot is None:
                self.orders.pop(order_id, None)
            else:
                self.orders[order_id] = snapshot
                self._sync_order_doc(snapshot)

    def _sync_order_doc(self, order: Order) -> None:
        # Keep the raw orders feed in step with local writes until the next push.
        docs = self.collections[COLLECTIONS["orders"]]
        for i, doc in enumerate(docs):
            if doc.get("id") == order.id:
                docs[i] = {**doc, **order.model_dump()}
                return

    # ---------- Reads ----------
    def is_live(self, name: str) -> bool:
        with self._lock:
            return not self.loading[name] and name not in self.errors

    def documents(self, name: str) -> Optional[List[dict]]:
        """Copy of a live collection, or None while it cannot be trusted."""
        with self._lock:
            if not self.is_live(name):
                return None
            return copy.deepcopy(self.collections[name])

    def live_time_rules(self) -> Optional[TimeRulesConfig]:
        with self._lock:
            if not self.is_live(TIME_RULES_DOC):
                return None
            return {slot_id: rule.model_copy(deep=True) for slot_id, rule in self.time_rules.items()}

    # ---------- Busy flags ----------
    @contextmanager
    def busy(self, action: str, key: str):
        flag = (action, key)
        with self._lock:
            if flag in self._busy:
                raise UpdateInProgress(f"{action} already in progress for {key}")
            self._busy.add(flag)
        try:
            yield
        finally:
            with self._lock:
                self._busy.discard(flag)

    def is_busy(self, action: str, key: str) -> bool:
        with self._lock:
            return (action, key) in self._busy

    # ---------- Subscriptions ----------
    def attach(self, store: DocumentStore, watch: bool = True) -> None:
        """Subscribe every feed. Store failures are recorded, never raised."""
        for name in COLLECTIONS.values():
            self._subscriptions.append(store.subscribe_to_collection(
                name,
                partial(self.replace_collection, name),
                partial(self.subscription_failed, name),
                watch=watch,
            ))
        self._subscriptions.append(store.subscribe_to_collection(
            SETTINGS_COLLECTION,
            self.replace_time_rules,
            partial(self.subscription_failed, TIME_RULES_DOC),
            filters={"_id": TIME_RULES_DOC},
            watch=watch,
        ))

    def detach(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []

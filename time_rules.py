"""
Time-slot gated category availability.

A TimeSlot is a named wall-clock window ("HH:MM" to "HH:MM", local time).
When end <= start the window wraps past midnight. The time rules config maps
slot ids to the categories sellable during that slot and is stored as one
singleton document, written whole on every save (last writer wins).
"""
import logging
from datetime import datetime, time
from typing import Iterable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from pymongo.errors import PyMongoError

import config
from database import DocumentStore
from schemas import COLLECTIONS, TIME_RULES_DOC, CategoryReference, TimeRule, TimeRulesConfig, TimeSlot

logger = logging.getLogger("grocery-admin.time_rules")


DEFAULT_TIME_SLOTS = [
    TimeSlot(name="morning", label="Morning", icon="🌅", start_time="06:00", end_time="12:00", order=0),
    TimeSlot(name="afternoon", label="Afternoon", icon="☀️", start_time="12:00", end_time="18:00", order=1),
    TimeSlot(name="evening", label="Evening", icon="🌆", start_time="18:00", end_time="22:00", order=2),
    TimeSlot(name="night", label="Night", icon="🌙", start_time="22:00", end_time="06:00", order=3),
]


def to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def local_now() -> datetime:
    return datetime.now(ZoneInfo(config.STORE_TIMEZONE))


def sort_slots(slots: Iterable[TimeSlot]) -> List[TimeSlot]:
    return sorted(slots, key=lambda s: s.order)


def slot_contains(slot: TimeSlot, minute_of_day: int) -> bool:
    start = to_minutes(slot.start_time)
    end = to_minutes(slot.end_time)
    if end <= start:
        return minute_of_day >= start or minute_of_day <= end
    return start <= minute_of_day <= end


def resolve_active_slot(now: Union[datetime, time], slots: Iterable[TimeSlot]) -> Optional[TimeSlot]:
    """Return the first active slot whose window contains `now`.

    Slots are checked in the order given, so pass them through sort_slots()
    first. Overlapping slots are not disambiguated beyond that order.
    """
    minute_of_day = now.hour * 60 + now.minute
    for slot in slots:
        if not slot.is_active:
            continue
        try:
            if slot_contains(slot, minute_of_day):
                return slot
        except ValueError:
            logger.warning("Skipping time slot %s with malformed window %r-%r",
                           slot.id, slot.start_time, slot.end_time)
    return None


def available_categories(slot: Optional[TimeSlot], rules: TimeRulesConfig) -> List[CategoryReference]:
    if slot is None or slot.id not in rules:
        return []
    return list(rules[slot.id].allowed_categories)


def categories_available_at(now: Union[datetime, time], slots: Iterable[TimeSlot],
                            rules: TimeRulesConfig) -> Tuple[Optional[TimeSlot], List[CategoryReference]]:
    slot = resolve_active_slot(now, sort_slots(slots))
    return slot, available_categories(slot, rules)


def toggle_category_for_slot(rules: TimeRulesConfig, slot: TimeSlot, category: CategoryReference,
                             included: bool) -> TimeRulesConfig:
    new_rules = {slot_id: rule.model_copy(deep=True) for slot_id, rule in rules.items()}
    rule = new_rules.get(slot.id)
    if rule is None:
        rule = TimeRule(
            time_slot_name=slot.name,
            start_time=slot.start_time,
            end_time=slot.end_time,
            allowed_categories=[],
            is_active=slot.is_active,
        )
        new_rules[slot.id] = rule

    if included:
        if not any(c.id == category.id for c in rule.allowed_categories):
            rule.allowed_categories.append(CategoryReference(id=category.id, name=category.name))
    else:
        rule.allowed_categories = [c for c in rule.allowed_categories if c.id != category.id]
    return new_rules


def prune_orphaned_rules(rules: TimeRulesConfig, slots: Iterable[TimeSlot]) -> TimeRulesConfig:
    known = {slot.id for slot in slots}
    return {slot_id: rule for slot_id, rule in rules.items() if slot_id in known}


# ---------- Persistence ----------

def get_time_rules(store: DocumentStore) -> TimeRulesConfig:
    doc = store.get_singleton(TIME_RULES_DOC)
    if not doc:
        return {}
    return {slot_id: TimeRule.model_validate(rule) for slot_id, rule in doc.items()}


def save_rules(store: DocumentStore, rules: TimeRulesConfig) -> None:
    store.set_singleton(TIME_RULES_DOC, {slot_id: rule.model_dump() for slot_id, rule in rules.items()})
    logger.info("Saved time rules for %d slot(s)", len(rules))


def list_time_slots(store: DocumentStore) -> List[TimeSlot]:
    docs = store.list(COLLECTIONS["time_slots"], sort=[("order", 1)])
    return [TimeSlot.model_validate(d) for d in docs]


def delete_time_slot(store: DocumentStore, slot_id: str) -> bool:
    """Delete the slot, then drop its rule entry.

    The rule cleanup is a second, best-effort write. Returns False when it
    failed; the orphaned entry is then ignored by evaluation.
    """
    store.delete(COLLECTIONS["time_slots"], slot_id)
    try:
        store.unset_singleton_field(TIME_RULES_DOC, slot_id)
    except PyMongoError as exc:
        logger.warning("Time slot %s deleted but its rule entry was left behind: %s", slot_id, exc)
        return False
    return True


def seed_default_time_slots(store: DocumentStore) -> List[str]:
    coll = COLLECTIONS["time_slots"]
    if store.db[coll].count_documents({}) > 0:
        return []
    return [store.create(coll, slot) for slot in DEFAULT_TIME_SLOTS]

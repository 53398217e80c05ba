"""
Allocation workflow: duplicate detection, fraud recording, allocation commit
and regional stock adjustment.

The views call ``submit_allocation``; everything else in this module is the
machinery behind it. Persistence goes through ``AllocationStore`` so the
workflow can be exercised against a stub store in tests.
"""
import json
import logging
from collections import namedtuple

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from .models import Allocation, FraudAlert, GoodsType, RegionalGoods

logger = logging.getLogger(__name__)


# Outcomes returned to the submission handler
SUCCESS = 'success'
FRAUD_BLOCKED = 'fraud_blocked'
FAILED = 'failed'

UNKNOWN_GOODS_NAME = 'Unknown Resource'

GoodsEntry = namedtuple('GoodsEntry', ['goods_id', 'name', 'quantity'])
Geolocation = namedtuple('Geolocation', ['latitude', 'longitude'])
StockLine = namedtuple('StockLine', ['row_id', 'goods_type_id', 'region_id'])


class AttemptState:
    START = 'start'
    CHECKING_ELIGIBILITY = 'checking_eligibility'
    BLOCKED = 'blocked'
    COMMITTING = 'committing'
    COMMITTED = 'committed'
    ADJUSTING_INVENTORY = 'adjusting_inventory'
    DONE = 'done'
    FAILED = 'failed'

    TERMINAL = (BLOCKED, DONE, FAILED)


# Errors

class AllocationError(Exception):
    """Base class for allocation workflow errors"""


class AllocationValidationError(AllocationError):
    """Submission is incomplete; raised before the store is touched"""


class DataUnavailable(AllocationError):
    """The store could not be read"""


class WriteFailed(AllocationError):
    """The store rejected or failed a write"""


class PartialInventoryFailure(AllocationError):
    """
    The allocation was committed but some stock lines could not be
    decremented. Earlier decrements in the batch are kept.
    """

    def __init__(self, failed_rows, allocation_id=None):
        self.failed_rows = list(failed_rows)
        self.allocation_id = allocation_id
        super().__init__(
            f"Stock could not be updated for rows {', '.join(str(r) for r in self.failed_rows)}"
        )


# Store boundary helpers

def _coerce_id(value):
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def _entry_from_item(item):
    if isinstance(item, dict):
        goods_id = item.get('goods_id', item.get('id'))
        if goods_id is None:
            return None
        try:
            quantity = int(item.get('quantity', 1))
        except (TypeError, ValueError):
            quantity = 1
        return GoodsEntry(_coerce_id(goods_id), item.get('name') or '', quantity)
    if item is None or item == '':
        return None
    return GoodsEntry(_coerce_id(item), '', 1)


def normalize_goods(raw):
    """
    Decode a stored goods value into a list of ``GoodsEntry``.

    Accepts a list of entry dicts, a list of bare goods ids, a mapping of
    entries, or a JSON string holding any of those.
    """
    if raw is None or raw == '':
        return []

    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Could not decode goods value {raw!r}")
            return []

    if isinstance(raw, dict):
        # A single entry or a mapping keyed by position/id
        if 'goods_id' in raw or 'id' in raw:
            items = [raw]
        else:
            items = list(raw.values())
    elif isinstance(raw, (list, tuple)):
        items = raw
    else:
        items = [raw]

    entries = []
    for item in items:
        entry = _entry_from_item(item)
        if entry is not None:
            entries.append(entry)
    return entries


def goods_to_json(entries):
    return [
        {'goods_id': entry.goods_id, 'name': entry.name, 'quantity': entry.quantity}
        for entry in entries
    ]


def coerce_location(value):
    """Return a ``Geolocation`` or None. Partial coordinates count as absent."""
    if value is None:
        return None
    if isinstance(value, dict):
        latitude, longitude = value.get('latitude'), value.get('longitude')
    else:
        try:
            latitude, longitude = value
        except (TypeError, ValueError):
            return None
    if latitude in (None, '') or longitude in (None, ''):
        return None
    try:
        return Geolocation(float(latitude), float(longitude))
    except (TypeError, ValueError):
        return None


class AllocationStore:
    """
    ORM-backed persistence for the workflow. Database errors are translated
    into ``DataUnavailable`` for reads and ``WriteFailed`` for writes.
    """

    def __init__(self, recency_window=None):
        self.recency_window = recency_window or settings.AID_ALLOCATION_RECENCY_WINDOW

    def find_recent_allocation(self, beneficiary_id, now=None):
        cutoff = (now or timezone.now()) - self.recency_window
        try:
            return Allocation.objects.filter(
                beneficiary_id=beneficiary_id,
                allocated_at__gte=cutoff,
            ).exists()
        except DatabaseError as e:
            logger.error(f"Recent allocation lookup failed for beneficiary {beneficiary_id}: {str(e)}")
            raise DataUnavailable(str(e)) from e

    def stock_lines(self, row_ids):
        try:
            rows = RegionalGoods.objects.filter(pk__in=row_ids).values('id', 'goods_type_id', 'region_id')
            return {row['id']: StockLine(row['id'], row['goods_type_id'], row['region_id']) for row in rows}
        except DatabaseError as e:
            logger.error(f"Stock line lookup failed: {str(e)}")
            raise DataUnavailable(str(e)) from e

    def goods_type_names(self):
        try:
            return dict(GoodsType.objects.values_list('id', 'name'))
        except DatabaseError as e:
            logger.error(f"Goods type lookup failed: {str(e)}")
            raise DataUnavailable(str(e)) from e

    def insert_fraud_alert(self, beneficiary_id, disburser_id, location, details, goods_ids=()):
        location = coerce_location(location)
        try:
            alert = FraudAlert.objects.create(
                beneficiary_id=beneficiary_id,
                disburser_id=disburser_id,
                goods_ids=list(goods_ids),
                details=details,
                latitude=location.latitude if location else None,
                longitude=location.longitude if location else None,
            )
        except DatabaseError as e:
            logger.error(f"Fraud alert insert failed for beneficiary {beneficiary_id}: {str(e)}")
            raise WriteFailed(str(e)) from e
        return alert.id

    def insert_allocation(self, beneficiary_id, disburser_id, goods, location):
        location = coerce_location(location)
        try:
            allocation = Allocation.objects.create(
                beneficiary_id=beneficiary_id,
                disburser_id=disburser_id,
                goods=goods_to_json(goods),
                latitude=location.latitude if location else None,
                longitude=location.longitude if location else None,
            )
        except DatabaseError as e:
            logger.error(f"Allocation insert failed for beneficiary {beneficiary_id}: {str(e)}")
            raise WriteFailed(str(e)) from e
        return allocation.id

    def get_regional_goods_quantity(self, row_id):
        try:
            return RegionalGoods.objects.values_list('quantity', flat=True).get(pk=row_id)
        except RegionalGoods.DoesNotExist as e:
            raise DataUnavailable(f"Stock line {row_id} does not exist") from e
        except DatabaseError as e:
            logger.error(f"Stock read failed for row {row_id}: {str(e)}")
            raise DataUnavailable(str(e)) from e

    def update_regional_goods_quantity(self, row_id, new_quantity):
        try:
            updated = RegionalGoods.objects.filter(pk=row_id).update(
                quantity=new_quantity, updated_at=timezone.now()
            )
        except DatabaseError as e:
            logger.error(f"Stock update failed for row {row_id}: {str(e)}")
            raise WriteFailed(str(e)) from e
        if not updated:
            raise WriteFailed(f"Stock line {row_id} does not exist")


class GoodsNameCache:
    """
    Read-through map of goods type id to display name. Loaded from the store
    on first lookup and kept for the lifetime of the owner.
    """

    def __init__(self, store=None):
        self.store = store or AllocationStore()
        self._names = None

    def _load(self):
        if self._names is None:
            self._names = {_coerce_id(k): v for k, v in self.store.goods_type_names().items()}
        return self._names

    def name_for(self, goods_id):
        return self._load().get(_coerce_id(goods_id), UNKNOWN_GOODS_NAME)

    def names_for(self, entries):
        return [entry.name or self.name_for(entry.goods_id) for entry in entries]

    def describe(self, raw_goods):
        names = self.names_for(normalize_goods(raw_goods))
        return ', '.join(names) if names else 'No items'

    @property
    def is_loaded(self):
        return self._names is not None


class AllocationResult:

    def __init__(self, outcome, message, state, allocation_id=None, fraud_alert_id=None, warnings=None):
        self.outcome = outcome
        self.message = message
        self.state = state
        self.allocation_id = allocation_id
        self.fraud_alert_id = fraud_alert_id
        self.warnings = warnings or []

    @property
    def succeeded(self):
        return self.outcome == SUCCESS

    def as_dict(self):
        return {
            'outcome': self.outcome,
            'message': self.message,
            'allocation_id': self.allocation_id,
            'fraud_alert_id': self.fraud_alert_id,
            'warnings': list(self.warnings),
        }

    def __repr__(self):
        return f"<AllocationResult {self.outcome}: {self.message}>"


# Workflow components

def has_recent_allocation(store, beneficiary_id):
    """True when the beneficiary already received goods inside the recency window."""
    if not beneficiary_id:
        raise AllocationValidationError("Please select a beneficiary")
    return store.find_recent_allocation(beneficiary_id)


def fraud_details(goods_names):
    return f"Attempted duplicate allocation: {', '.join(goods_names)}"


def record_fraud_alert(store, beneficiary_id, disburser_id, location, goods_names, goods_ids=()):
    return store.insert_fraud_alert(
        beneficiary_id,
        disburser_id,
        location,
        fraud_details(goods_names),
        goods_ids=goods_ids,
    )


def commit_allocation(store, beneficiary_id, disburser_id, goods, location):
    """Persist the allocation. Eligibility must already have been checked."""
    if not goods:
        raise AllocationValidationError("Please select at least one aid item")
    return store.insert_allocation(beneficiary_id, disburser_id, goods, location)


def adjust_inventory(store, row_ids, allocation_id=None):
    """
    Decrement each stock line by one, floored at zero, in order. A failing
    line does not undo earlier ones; failures are collected and reported
    together once the batch has been walked.
    """
    failed = []
    for row_id in row_ids:
        try:
            quantity = store.get_regional_goods_quantity(row_id)
            store.update_regional_goods_quantity(row_id, max(0, quantity - 1))
        except (DataUnavailable, WriteFailed) as e:
            logger.error(f"Stock decrement failed for row {row_id} (allocation {allocation_id}): {str(e)}")
            failed.append(row_id)
    if failed:
        raise PartialInventoryFailure(failed, allocation_id=allocation_id)


class AllocationWorkflow:
    """
    One allocation attempt:

        START -> CHECKING_ELIGIBILITY -> BLOCKED
                                      -> COMMITTING -> COMMITTED -> ADJUSTING_INVENTORY -> DONE
                                                    -> FAILED
    """

    def __init__(self, store=None, name_cache=None):
        self.store = store or AllocationStore()
        self.name_cache = name_cache or GoodsNameCache(self.store)
        self.state = AttemptState.START

    def _transition(self, state):
        logger.debug(f"Allocation attempt {self.state} -> {state}")
        self.state = state

    def _result(self, outcome, message, **kwargs):
        return AllocationResult(outcome, message, self.state, **kwargs)

    def _fail(self, message):
        self._transition(AttemptState.FAILED)
        return self._result(FAILED, message)

    def resolve_goods(self, selected_goods_ids, region_id=None):
        """Map selected stock line ids to (row ids, goods entries), keeping selection order."""
        row_ids = []
        for value in selected_goods_ids or []:
            row_id = _coerce_id(value)
            if row_id not in row_ids:
                row_ids.append(row_id)
        if not row_ids:
            raise AllocationValidationError("Please select at least one aid item")

        lines = self.store.stock_lines(row_ids)
        missing = [row_id for row_id in row_ids if row_id not in lines]
        if region_id is not None:
            missing += [row_id for row_id in row_ids if row_id in lines and lines[row_id].region_id != region_id]
        if missing:
            raise AllocationValidationError("Some selected aid items are not available in this region")

        entries = [
            GoodsEntry(lines[row_id].goods_type_id, self.name_cache.name_for(lines[row_id].goods_type_id), 1)
            for row_id in row_ids
        ]
        return row_ids, entries

    def run(self, beneficiary_id, disburser_id, selected_goods_ids, location=None, region_id=None):
        location = coerce_location(location)

        if not beneficiary_id:
            return self._fail("Please select a beneficiary")
        if not selected_goods_ids:
            return self._fail("Please select at least one aid item")

        try:
            row_ids, entries = self.resolve_goods(selected_goods_ids, region_id=region_id)
        except AllocationValidationError as e:
            return self._fail(str(e))
        except DataUnavailable:
            return self._fail("Could not load the selected aid items. Please try again.")

        self._transition(AttemptState.CHECKING_ELIGIBILITY)
        try:
            recent = has_recent_allocation(self.store, beneficiary_id)
        except DataUnavailable:
            return self._fail("Could not verify the beneficiary's allocation history. Please try again.")

        if recent:
            names = [entry.name for entry in entries]
            try:
                alert_id = record_fraud_alert(
                    self.store, beneficiary_id, disburser_id, location, names,
                    goods_ids=[entry.goods_id for entry in entries],
                )
            except WriteFailed:
                return self._fail("Duplicate allocation blocked, but the fraud alert could not be recorded.")
            self._transition(AttemptState.BLOCKED)
            logger.warning(
                f"Duplicate allocation blocked for beneficiary {beneficiary_id} "
                f"by disburser {disburser_id} (alert {alert_id})"
            )
            return self._result(
                FRAUD_BLOCKED,
                "This beneficiary has recently received an allocation. Duplicate prevented.",
                fraud_alert_id=alert_id,
            )

        self._transition(AttemptState.COMMITTING)
        try:
            allocation_id = commit_allocation(self.store, beneficiary_id, disburser_id, entries, location)
        except WriteFailed:
            return self._fail("The allocation could not be saved. No stock was changed.")
        self._transition(AttemptState.COMMITTED)

        self._transition(AttemptState.ADJUSTING_INVENTORY)
        warnings = []
        try:
            adjust_inventory(self.store, row_ids, allocation_id=allocation_id)
        except PartialInventoryFailure as e:
            failed_names = [entries[row_ids.index(row_id)].name for row_id in e.failed_rows]
            warnings.append(
                f"Stock counts could not be updated for: {', '.join(failed_names)}. "
                "Please correct the inventory."
            )
        self._transition(AttemptState.DONE)
        logger.info(f"Allocation {allocation_id} recorded for beneficiary {beneficiary_id}")

        return self._result(
            SUCCESS,
            "Resources have been successfully allocated.",
            allocation_id=allocation_id,
            warnings=warnings,
        )


def submit_allocation(beneficiary_id, disburser_id, selected_goods_ids, location=None,
                      region_id=None, store=None, name_cache=None):
    """
    Run one allocation attempt and return an ``AllocationResult``. Workflow
    errors never escape; they are reported through the result outcome.
    """
    workflow = AllocationWorkflow(store=store, name_cache=name_cache)
    return workflow.run(beneficiary_id, disburser_id, selected_goods_ids, location=location, region_id=region_id)

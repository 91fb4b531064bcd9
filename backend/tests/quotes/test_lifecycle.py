from datetime import timedelta
from decimal import Decimal

import pytest

from src.quotes.constants import QuoteStatus, ALLOWED_TRANSITIONS, TERMINAL_STATUSES
from src.quotes.exceptions import (
    IllegalQuoteTransitionException,
    InvalidQuoteStateException,
    ConcurrentQuoteModificationException,
    QuoteNotFoundException,
    QuoteAccessForbiddenException,
)
from src.quotes.lifecycle import LifecycleManager, check_transition, ensure_editable
from src.quotes.models import Quote, QuoteUpdate
from src.quotes.utils import utcnow

ALL_PAIRS = [(f, t) for f in QuoteStatus for t in QuoteStatus]
LEGAL_PAIRS = [(f, t) for f, t in ALL_PAIRS if t in ALLOWED_TRANSITIONS[f]]
ILLEGAL_PAIRS = [(f, t) for f, t in ALL_PAIRS if t not in ALLOWED_TRANSITIONS[f]]


@pytest.mark.parametrize("from_status, to_status", LEGAL_PAIRS)
def test_check_transition_accepts_table_pairs(from_status, to_status):
    assert check_transition(from_status, to_status) == to_status


@pytest.mark.parametrize("from_status, to_status", ILLEGAL_PAIRS)
def test_check_transition_rejects_other_pairs(from_status, to_status):
    with pytest.raises(IllegalQuoteTransitionException):
        check_transition(from_status, to_status)


def test_revised_is_never_requestable():
    for from_status in QuoteStatus:
        with pytest.raises(IllegalQuoteTransitionException):
            check_transition(from_status, QuoteStatus.REVISED)


def test_unknown_target_status_is_illegal():
    with pytest.raises(IllegalQuoteTransitionException):
        check_transition(QuoteStatus.DRAFT, "archived")


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {
        QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED, QuoteStatus.REVISED
    }


def _quote(status: QuoteStatus) -> Quote:
    return Quote(id=1, quote_number="QT-1", title="t", status=status.value, expiry_date=utcnow(), owner_id=1)


@pytest.mark.parametrize("status", [s for s in QuoteStatus if s != QuoteStatus.DRAFT])
def test_ensure_editable_locks_items_outside_draft(status):
    with pytest.raises(InvalidQuoteStateException):
        ensure_editable(_quote(status), ["items"])


def test_ensure_editable_allows_notes_while_sent():
    ensure_editable(_quote(QuoteStatus.SENT), ["notes", "title"])


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_ensure_editable_refuses_terminal_quotes(status):
    with pytest.raises(InvalidQuoteStateException):
        ensure_editable(_quote(status), ["notes"])


# --- Transitions persistées ---

async def _force_status(quote_repo, quote_id: int, *path: QuoteStatus):
    """Fait parcourir au devis une suite de transitions légales."""
    quote = await quote_repo.get_by_id_with_items(quote_id=quote_id)
    for target in path:
        quote = await quote_repo.update_status(
            quote_id=quote_id,
            expected_version=quote.lock_version,
            from_status=QuoteStatus(quote.status),
            to_status=target,
        )
    return quote


@pytest.mark.asyncio
@pytest.mark.parametrize("from_status, to_status", LEGAL_PAIRS)
async def test_transition_succeeds_for_every_table_pair(
    quote_repo, create_quote, sales_user, from_status, to_status
):
    created = await create_quote(sales_user)
    path = {
        QuoteStatus.DRAFT: [],
        QuoteStatus.PENDING: [QuoteStatus.PENDING],
        QuoteStatus.SENT: [QuoteStatus.SENT],
    }[from_status]
    await _force_status(quote_repo, created.id, *path)

    manager = LifecycleManager(quote_repo=quote_repo)
    updated = await manager.transition(created.id, to_status, sales_user)

    assert updated.status == to_status
    assert updated.lock_version == created.lock_version + len(path) + 1
    assert updated.status_changed_at is not None


@pytest.mark.asyncio
async def test_draft_to_sent_then_back_to_draft_is_illegal(quote_repo, create_quote, sales_user):
    created = await create_quote(sales_user)
    manager = LifecycleManager(quote_repo=quote_repo)

    sent = await manager.transition(created.id, QuoteStatus.SENT, sales_user)
    assert sent.status == QuoteStatus.SENT

    with pytest.raises(IllegalQuoteTransitionException):
        await manager.transition(created.id, QuoteStatus.DRAFT, sales_user)

    reloaded = await quote_repo.get_by_id_with_items(quote_id=created.id)
    assert reloaded.status == QuoteStatus.SENT.value


@pytest.mark.asyncio
async def test_transition_unknown_quote(quote_repo, sales_user):
    with pytest.raises(QuoteNotFoundException):
        await LifecycleManager(quote_repo=quote_repo).transition(999, QuoteStatus.SENT, sales_user)


@pytest.mark.asyncio
async def test_transition_refused_for_other_owner(quote_repo, create_quote, sales_user, other_sales_user):
    created = await create_quote(sales_user)
    with pytest.raises(QuoteAccessForbiddenException):
        await LifecycleManager(quote_repo=quote_repo).transition(created.id, QuoteStatus.SENT, other_sales_user)


@pytest.mark.asyncio
async def test_stale_expected_version_is_a_conflict(quote_repo, create_quote, sales_user):
    created = await create_quote(sales_user)
    manager = LifecycleManager(quote_repo=quote_repo)
    await manager.transition(created.id, QuoteStatus.SENT, sales_user, expected_version=created.lock_version)

    with pytest.raises(ConcurrentQuoteModificationException):
        await manager.transition(created.id, QuoteStatus.ACCEPTED, sales_user, expected_version=created.lock_version)


@pytest.mark.asyncio
async def test_concurrent_write_on_stale_snapshot_fails(quote_repo, create_quote, sales_user):
    """Deux écritures depuis la même lecture: la seconde échoue au lieu d'écraser la première."""
    created = await create_quote(sales_user)
    await quote_repo.update_status(
        quote_id=created.id,
        expected_version=created.lock_version,
        from_status=QuoteStatus.DRAFT,
        to_status=QuoteStatus.SENT,
    )
    with pytest.raises(ConcurrentQuoteModificationException):
        await quote_repo.update_status(
            quote_id=created.id,
            expected_version=created.lock_version,
            from_status=QuoteStatus.DRAFT,
            to_status=QuoteStatus.PENDING,
        )
    reloaded = await quote_repo.get_by_id_with_items(quote_id=created.id)
    assert reloaded.status == QuoteStatus.SENT.value


@pytest.mark.asyncio
async def test_items_locked_once_sent(quote_service, quote_repo, create_quote, sales_user, item_factory):
    created = await create_quote(sales_user)
    await LifecycleManager(quote_repo=quote_repo).transition(created.id, QuoteStatus.SENT, sales_user)

    with pytest.raises(InvalidQuoteStateException):
        await quote_service.update_quote(created.id, QuoteUpdate(items=[item_factory(quantity=5)]), sales_user)
    with pytest.raises(InvalidQuoteStateException):
        await quote_service.update_quote(created.id, QuoteUpdate(shipping_cost=Decimal("0")), sales_user)

    # Les champs descriptifs restent modifiables tant que le devis n'est pas final
    updated = await quote_service.update_quote(created.id, QuoteUpdate(notes="Relance client"), sales_user)
    assert updated.notes == "Relance client"
    assert updated.grand_total == Decimal("393.00")


# --- Expiration ---

@pytest.mark.asyncio
async def test_expire_overdue_is_idempotent(quote_repo, create_quote, sales_user):
    now = utcnow()
    overdue = await create_quote(sales_user, expiry_date=now + timedelta(days=1))
    still_valid = await create_quote(sales_user, expiry_date=now + timedelta(days=60))
    draft_overdue = await create_quote(sales_user, expiry_date=now + timedelta(days=1))
    await _force_status(quote_repo, overdue.id, QuoteStatus.SENT)
    await _force_status(quote_repo, still_valid.id, QuoteStatus.SENT)

    manager = LifecycleManager(quote_repo=quote_repo)
    later = now + timedelta(days=2)
    assert await manager.expire_overdue(later) == 1
    assert await manager.expire_overdue(later) == 0

    expired = await quote_repo.get_by_id_with_items(quote_id=overdue.id)
    assert expired.status == QuoteStatus.EXPIRED.value
    valid = await quote_repo.get_by_id_with_items(quote_id=still_valid.id)
    assert valid.status == QuoteStatus.SENT.value
    draft = await quote_repo.get_by_id_with_items(quote_id=draft_overdue.id)
    assert draft.status == QuoteStatus.DRAFT.value

    events = await quote_repo.list_events(quote_id=overdue.id)
    assert [e.event_type for e in events].count("expired") == 1


@pytest.mark.asyncio
async def test_expire_if_sent_skips_quote_changed_meanwhile(quote_repo, create_quote, sales_user):
    now = utcnow()
    created = await create_quote(sales_user, expiry_date=now + timedelta(days=1))
    await _force_status(quote_repo, created.id, QuoteStatus.SENT, QuoteStatus.ACCEPTED)

    assert await quote_repo.expire_if_sent(quote_id=created.id, now=now + timedelta(days=2)) is False
    reloaded = await quote_repo.get_by_id_with_items(quote_id=created.id)
    assert reloaded.status == QuoteStatus.ACCEPTED.value

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from src.quotes.constants import QuoteStatus
from src.quotes.exceptions import (
    QuoteRevisionConflictException,
    QuoteNotFoundException,
    ConcurrentQuoteModificationException,
    InvalidQuoteStateException,
)
from src.quotes.lifecycle import LifecycleManager
from src.quotes.models import Quote
from src.quotes.revisions import RevisionService
from src.quotes.utils import utcnow, ensure_utc


@pytest.mark.asyncio
async def test_clone_creates_next_version_and_revises_source(quote_repo, create_quote, sales_user):
    source = await create_quote(
        sales_user,
        notes="Accès par le portail",
        terms_and_conditions="Acompte 30%",
        billing_address={"name": "Jean Dupont", "city": "Lyon"},
    )
    await LifecycleManager(quote_repo=quote_repo).transition(source.id, QuoteStatus.SENT, sales_user)

    child = await RevisionService(quote_repo=quote_repo).clone(source.id, sales_user)

    assert child.id != source.id
    assert child.quote_number != source.quote_number
    assert child.version == source.version + 1
    assert child.parent_quote_id == source.id
    assert child.status == QuoteStatus.DRAFT
    assert child.deal_id is None
    assert child.owner_id == sales_user.id
    assert child.title == source.title
    assert child.notes == "Accès par le portail"
    assert child.terms_and_conditions == "Acompte 30%"
    assert child.billing_address.city == "Lyon"
    assert [(i.product_name, i.quantity, i.unit_price) for i in child.items] == [
        (i.product_name, i.quantity, i.unit_price) for i in source.items
    ]
    assert child.grand_total == Decimal("393.00")

    reloaded_source = await quote_repo.get_by_id_with_items(quote_id=source.id)
    assert reloaded_source.status == QuoteStatus.REVISED.value


@pytest.mark.asyncio
async def test_clone_recomputes_totals_instead_of_copying(quote_repo, create_quote, sales_user, db_session):
    source = await create_quote(sales_user)
    # Totaux corrompus en base: la révision ne doit pas les reprendre
    await db_session.execute(update(Quote).where(Quote.id == source.id).values(grand_total=Decimal("1.00")))
    await db_session.commit()

    child = await RevisionService(quote_repo=quote_repo).clone(source.id, sales_user)
    assert child.grand_total == Decimal("393.00")
    assert child.subtotal == Decimal("400.00")


@pytest.mark.asyncio
async def test_second_clone_of_same_source_is_a_conflict(quote_repo, create_quote, sales_user):
    source = await create_quote(sales_user)
    service = RevisionService(quote_repo=quote_repo)
    await service.clone(source.id, sales_user)

    with pytest.raises(QuoteRevisionConflictException):
        await service.clone(source.id, sales_user)


@pytest.mark.asyncio
async def test_clone_of_child_continues_the_chain(quote_repo, create_quote, sales_user):
    source = await create_quote(sales_user)
    service = RevisionService(quote_repo=quote_repo)
    v2 = await service.clone(source.id, sales_user)
    v3 = await service.clone(v2.id, sales_user)

    assert v3.version == 3
    assert v3.parent_quote_id == v2.id


@pytest.mark.asyncio
async def test_clone_unknown_quote(quote_repo, sales_user):
    with pytest.raises(QuoteNotFoundException):
        await RevisionService(quote_repo=quote_repo).clone(12345, sales_user)


@pytest.mark.asyncio
async def test_clone_guarded_by_source_version(quote_repo, create_quote, sales_user, db_session):
    """Une révision calculée sur une lecture périmée est refusée et n'insère rien."""
    source = await create_quote(sales_user)
    snapshot = await quote_repo.get_by_id_with_items(quote_id=source.id)
    stale_version = snapshot.lock_version
    await quote_repo.update_quote(quote_id=source.id, expected_version=stale_version, values={"notes": "modifié"})

    child = Quote(
        quote_number="QT-TEST-STALE",
        version=2,
        parent_quote_id=source.id,
        title="stale",
        status=QuoteStatus.DRAFT.value,
        expiry_date=utcnow() + timedelta(days=30),
        owner_id=sales_user.id,
    )
    with pytest.raises(ConcurrentQuoteModificationException):
        await quote_repo.create_revision(
            source=snapshot, expected_version=stale_version, child=child, items=[]
        )

    assert await quote_repo.find_active_child(quote_id=source.id) is None
    reloaded = await quote_repo.get_by_id_with_items(quote_id=source.id)
    assert reloaded.status == QuoteStatus.DRAFT.value


@pytest.mark.asyncio
async def test_clone_of_expired_quote_gets_fresh_validity(quote_repo, create_quote, sales_user, db_session):
    now = utcnow()
    source = await create_quote(sales_user, expiry_date=now + timedelta(days=1))
    await db_session.execute(
        update(Quote).where(Quote.id == source.id).values(expiry_date=now - timedelta(days=1))
    )
    await db_session.commit()

    child = await RevisionService(quote_repo=quote_repo).clone(source.id, sales_user)
    assert ensure_utc(child.expiry_date) > utcnow() + timedelta(days=29)


@pytest.mark.asyncio
async def test_clone_records_history_on_both_quotes(quote_repo, create_quote, sales_user):
    source = await create_quote(sales_user)
    child = await RevisionService(quote_repo=quote_repo).clone(source.id, sales_user)

    source_events = [e.event_type for e in await quote_repo.list_events(quote_id=source.id)]
    child_events = [e.event_type for e in await quote_repo.list_events(quote_id=child.id)]
    assert source_events == ["created", "revised"]
    assert child_events == ["created"]


@pytest.mark.asyncio
async def test_revision_child_cannot_be_deleted(quote_service, quote_repo, create_quote, sales_user, manager_user):
    """Supprimer la révision laisserait le parent 'revised' sans version active."""
    source = await create_quote(sales_user)
    child = await RevisionService(quote_repo=quote_repo).clone(source.id, sales_user)

    with pytest.raises(InvalidQuoteStateException):
        await quote_service.delete_quote(child.id, manager_user)

    active = await quote_repo.find_active_child(quote_id=source.id)
    assert active is not None
    assert active.id == child.id

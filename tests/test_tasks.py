"""Background maintenance"""

from datetime import timedelta

from sqlalchemy import select

from goalmania.models import OrderDetails
from goalmania.models.order import OrderDetailsStatus
from goalmania.tasks.cleanup_tasks import sweep_abandoned
from goalmania.utils.helpers import utcnow
from tests.factories import create_details, create_product, create_user


async def test_stale_pending_checkouts_are_abandoned(db):
    user = await create_user(db)
    product = await create_product(db)
    stale = await create_details(db, user, product, quantity=1, intent_id="pi_stale")
    await create_details(db, user, product, quantity=1, intent_id="pi_fresh")
    stale.created_at = utcnow() - timedelta(hours=72)
    await db.commit()

    swept = await sweep_abandoned(db, ttl_hours=48)
    await db.commit()

    assert swept == 1
    statuses = dict((await db.execute(
        select(OrderDetails.payment_intent_id, OrderDetails.status)
    )).all())
    assert OrderDetailsStatus(statuses["pi_stale"]) == OrderDetailsStatus.ABANDONED
    assert OrderDetailsStatus(statuses["pi_fresh"]) == OrderDetailsStatus.PENDING

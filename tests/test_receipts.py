import pytest
from sqlalchemy import select

from opsdesk.core.exceptions import ForbiddenError
from opsdesk.models import MessageReceipt, ReceiptStatus
from opsdesk.services.chat.message_service import MessageService
from opsdesk.services.chat.receipt_service import ReceiptService
from opsdesk.services.chat.room_access import RoomAccessResolver


async def _team_with(db, *users):
    resolver = RoomAccessResolver(db)
    room = None
    for user in users:
        room = await resolver.get_or_create_team_room(user.id)
    return room


@pytest.mark.asyncio
async def test_unread_counts_messages_after_cursor(db, manager, employee):
    team = await _team_with(db, manager, employee)
    messages = MessageService(db)
    receipts = ReceiptService(db)

    assert await receipts.unread_count(team.id, employee.id) == 0

    await messages.send_message(team.id, manager.id, manager.role, "t1", "c-1")
    await messages.send_message(team.id, manager.id, manager.role, "t2", "c-2")
    assert await receipts.unread_count(team.id, employee.id) == 2

    await receipts.mark_read(team.id, employee.id, employee.role)
    assert await receipts.unread_count(team.id, employee.id) == 0

    await messages.send_message(team.id, manager.id, manager.role, "t3", "c-3")
    assert await receipts.unread_count(team.id, employee.id) == 1


@pytest.mark.asyncio
async def test_own_messages_are_never_unread(db, manager, employee):
    team = await _team_with(db, manager, employee)

    await MessageService(db).send_message(team.id, manager.id, manager.role, "note to all", "c-1")

    assert await ReceiptService(db).unread_count(team.id, manager.id) == 0


@pytest.mark.asyncio
async def test_mark_read_flips_receipts_and_moves_cursor(db, manager, employee):
    team = await _team_with(db, manager, employee)
    message = await MessageService(db).send_message(team.id, manager.id, manager.role, "hi", "c-1")
    receipts = ReceiptService(db)

    read_at = await receipts.mark_read(team.id, employee.id, employee.role)

    assert read_at is not None
    assert await receipts.last_read_at(team.id, employee.id) is not None
    stmt = select(MessageReceipt.status).where(
        MessageReceipt.message_id == message.id,
        MessageReceipt.user_id == employee.id,
    )
    assert (await db.execute(stmt)).scalar_one() == ReceiptStatus.READ

    # The sender's own receipt is untouched
    stmt = select(MessageReceipt.status).where(
        MessageReceipt.message_id == message.id,
        MessageReceipt.user_id == manager.id,
    )
    assert (await db.execute(stmt)).scalar_one() == ReceiptStatus.SENT


@pytest.mark.asyncio
async def test_mark_read_requires_access(db, manager, employee, other_employee):
    room = await RoomAccessResolver(db).get_or_create_direct_room(manager.id, manager.role, employee.id)

    with pytest.raises(ForbiddenError):
        await ReceiptService(db).mark_read(room.id, other_employee.id, other_employee.role)


@pytest.mark.asyncio
async def test_total_unread_spans_accessible_rooms(db, manager, employee):
    team = await _team_with(db, manager, employee)
    direct = await RoomAccessResolver(db).get_or_create_direct_room(manager.id, manager.role, employee.id)
    messages = MessageService(db)

    await messages.send_message(team.id, manager.id, manager.role, "team news", "c-1")
    await messages.send_message(direct.id, manager.id, manager.role, "quick question", "c-2")
    await messages.send_message(direct.id, manager.id, manager.role, "ping", "c-3")

    receipts = ReceiptService(db)
    assert await receipts.unread_counts(employee.id, [team.id, direct.id]) == {team.id: 1, direct.id: 2}
    assert await receipts.total_unread(employee.id) == 3
    assert await receipts.total_unread(manager.id) == 0


@pytest.mark.asyncio
async def test_user_without_membership_counts_full_history(db, manager, employee):
    team = await _team_with(db, manager)
    messages = MessageService(db)
    await messages.send_message(team.id, manager.id, manager.role, "welcome", "c-1")
    await messages.send_message(team.id, manager.id, manager.role, "rota is up", "c-2")

    receipts = ReceiptService(db)
    assert await receipts.last_read_at(team.id, employee.id) is None
    assert await receipts.unread_count(team.id, employee.id) == 2

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from feedalert.errors import NotFoundError, ValidationError
from feedalert.models import Device, ReadReceipt
from feedalert.schemas.device import (
    AnalyticsEventCreate,
    DeviceInfo,
    DeviceRegister,
    DeviceUpdate,
    MarkPostRead,
    Preferences,
)
from feedalert.services.device_directory import SqlDeviceDirectory, SqlReadReceiptStore
from feedalert.services.devices import DeviceService
from feedalert.services.eligibility import EligibilityResolver

from .conftest import make_token


def registration(token, threshold=5.0, categories=(), active=True):
    return DeviceRegister(
        device_token=token,
        platform="ios",
        relevance_threshold=threshold,
        is_active=active,
        device_info=DeviceInfo(device_id="8d3a6c1e-0000-4000-8000-000000000001", model="iPhone15,2"),
        preferences=Preferences(categories=list(categories), quiet_hours=True),
        registered_at=datetime.utcnow(),
    )


@pytest.fixture
def device_service(session_factory):
    return DeviceService(
        SqlDeviceDirectory(session_factory),
        SqlReadReceiptStore(session_factory),
        session_factory=session_factory,
    )


@pytest.mark.asyncio
async def test_register_creates_then_updates(device_service):
    token = make_token(1)

    device, created = await device_service.register_device(registration(token, threshold=5.0))
    assert created
    assert device.quiet_hours is True
    assert device.categories == []

    again, created = await device_service.register_device(registration(token, threshold=7.0, categories=["tech"]))
    assert not created
    assert again.id == device.id
    assert again.relevance_threshold == 7.0
    assert again.categories == ["tech"]


@pytest.mark.asyncio
async def test_register_rejects_malformed_token_before_writing(device_service, session_factory):
    with pytest.raises(ValidationError):
        await device_service.register_device(registration("abc123"))

    async with session_factory() as session:
        count = (await session.execute(select(func.count(Device.id)))).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_update_unknown_device_raises_not_found(device_service):
    with pytest.raises(NotFoundError):
        await device_service.update_device(make_token(9), DeviceUpdate(last_updated=datetime.utcnow()))


@pytest.mark.asyncio
async def test_update_changes_only_supplied_fields(device_service):
    token = make_token(1)
    await device_service.register_device(registration(token, threshold=5.0))

    device = await device_service.update_device(
        token, DeviceUpdate(is_active=False, last_updated=datetime.utcnow())
    )

    assert device.is_active is False
    assert device.relevance_threshold == 5.0


@pytest.mark.asyncio
async def test_mark_read_twice_keeps_one_receipt(device_service, session_factory):
    token = make_token(1)
    await device_service.register_device(registration(token))
    mark = MarkPostRead(post_id="post-1", read_at=datetime.utcnow())

    assert await device_service.mark_post_read(token, mark) is True
    assert await device_service.mark_post_read(token, mark) is False

    async with session_factory() as session:
        count = (await session.execute(select(func.count(ReadReceipt.id)))).scalar()
    assert count == 1
    assert await device_service.receipts.has_read(token, "post-1")


@pytest.mark.asyncio
async def test_mark_read_for_unknown_device_raises_not_found(device_service):
    with pytest.raises(NotFoundError):
        await device_service.mark_post_read(make_token(3), MarkPostRead(post_id="p", read_at=datetime.utcnow()))


@pytest.mark.asyncio
async def test_analytics_event_auto_registers_unknown_device(device_service):
    token = make_token(5)
    event = AnalyticsEventCreate(
        device_token=token,
        event="notification_opened",
        timestamp=datetime.utcnow(),
        platform="ios",
        post_id="post-1",
        relevance=8.4,
    )

    await device_service.record_analytics_event(event)

    device = await device_service.directory.get_device(token)
    assert device is not None
    assert device.relevance_threshold == 0.5
    assert device.categories == []
    assert device.is_active is True

    events = await device_service.device_analytics(token)
    assert [e.event for e in events] == ["notification_opened"]
    assert events[0].event_metadata == {"postId": "post-1", "relevance": 8.4}


@pytest.mark.asyncio
async def test_analytics_event_with_malformed_token_is_rejected(device_service):
    event = AnalyticsEventCreate(device_token="xyz", event="app_open", timestamp=datetime.utcnow(), platform="ios")

    with pytest.raises(ValidationError):
        await device_service.record_analytics_event(event)


@pytest.mark.asyncio
async def test_stale_devices_are_deactivated_not_deleted(device_service, session_factory):
    stale, fresh = make_token(1), make_token(2)
    await device_service.register_device(registration(stale))
    await device_service.register_device(registration(fresh))
    async with session_factory() as session:
        device = (await session.execute(select(Device).where(Device.device_token == stale))).scalar_one()
        device.last_updated = datetime.utcnow() - timedelta(days=31)
        await session.commit()

    assert await device_service.deactivate_stale_devices() == 1

    assert (await device_service.directory.get_device(stale)).is_active is False
    assert (await device_service.directory.get_device(fresh)).is_active is True


@pytest.mark.asyncio
async def test_old_read_receipts_are_purged(device_service, session_factory):
    token = make_token(1)
    await device_service.register_device(registration(token))
    await device_service.mark_post_read(token, MarkPostRead(post_id="old", read_at=datetime.utcnow()))
    await device_service.mark_post_read(token, MarkPostRead(post_id="new", read_at=datetime.utcnow()))
    async with session_factory() as session:
        receipt = (await session.execute(select(ReadReceipt).where(ReadReceipt.post_id == "old"))).scalar_one()
        receipt.created_at = datetime.utcnow() - timedelta(days=31)
        await session.commit()

    assert await device_service.cleanup_read_receipts() == 1
    assert not await device_service.receipts.has_read(token, "old")
    assert await device_service.receipts.has_read(token, "new")


@pytest.mark.asyncio
async def test_resolver_over_sql_directory(device_service):
    wildcard, sports, inactive, reader = (make_token(i) for i in range(1, 5))
    await device_service.register_device(registration(wildcard, threshold=0.5))
    await device_service.register_device(registration(sports, threshold=2.0, categories=["sports"]))
    await device_service.register_device(registration(inactive, threshold=0.5, active=False))
    await device_service.register_device(registration(reader, threshold=0.5))
    await device_service.mark_post_read(reader, MarkPostRead(post_id="p1", read_at=datetime.utcnow()))

    resolver = EligibilityResolver(device_service.directory, device_service.receipts)

    targets = await resolver.post_targets(8.5, ["politics"], "p1")
    assert {d.device_token for d in targets} == {wildcard}

    event_targets = await resolver.event_targets(1.0)
    assert {d.device_token for d in event_targets} == {wildcard, reader}

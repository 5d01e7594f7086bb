from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Sequence, Set, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from feedalert.database import init_db
from feedalert.errors import DeliveryError
from feedalert.services.push_gateway import PushGateway, PushPayload


def make_token(n: int) -> str:
    return f"{n:064x}"


@dataclass
class FakeDevice:
    device_token: str
    relevance_threshold: float = 0.5
    categories: List[str] = field(default_factory=list)
    is_active: bool = True


class InMemoryDirectory:
    def __init__(self, devices: Sequence[FakeDevice] = ()):
        self.devices = list(devices)
        self.queries: List[Tuple[float, bool]] = []

    async def find_eligible_devices(self, relevance: float, active_only: bool = True):
        self.queries.append((relevance, active_only))
        return [
            d for d in self.devices
            if d.relevance_threshold <= relevance and (d.is_active or not active_only)
        ]


class InMemoryReceipts:
    def __init__(self):
        self.rows: Dict[Tuple[str, str], datetime] = {}

    async def has_read(self, device_token: str, post_id: str) -> bool:
        return (device_token, post_id) in self.rows

    async def read_tokens(self, post_id: str, device_tokens: Sequence[str]) -> Set[str]:
        return {t for t in device_tokens if (t, post_id) in self.rows}

    async def mark_read(self, device_token: str, post_id: str, read_at: datetime) -> bool:
        if (device_token, post_id) in self.rows:
            return False
        self.rows[(device_token, post_id)] = read_at
        return True


class FakeGateway(PushGateway):
    """Records sends instead of talking to APNs."""

    def __init__(self, reject: Set[str] = frozenset(), explode: Set[str] = frozenset()):
        super().__init__()
        self.reject = set(reject)
        self.explode = set(explode)
        self.sent: List[Tuple[str, PushPayload]] = []
        self.attempted: List[str] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def send(self, device_token: str, payload: PushPayload):
        self.attempted.append(device_token)
        if device_token in self.explode:
            raise RuntimeError("gateway crashed")
        if device_token in self.reject:
            raise DeliveryError(device_token, "BadDeviceToken", status="400")
        self.sent.append((device_token, payload))


@pytest.fixture
def directory():
    return InMemoryDirectory()


@pytest.fixture
def receipts():
    return InMemoryReceipts()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()

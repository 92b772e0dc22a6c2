"""Shipment identifier index used by the linker.

Two implementations of one protocol: the SQL index used in production and an
in-memory index for tests and offline replays.
"""

import uuid
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.models.shipment import Shipment, ShipmentContainer

# Two candidates already make a match ambiguous; a few more help the reviewer.
MAX_CANDIDATES = 10


class ShipmentIndex(Protocol):
    async def find_by_booking(self, booking_number: str) -> list[uuid.UUID]: ...

    async def find_by_bl(self, bl_number: str) -> list[uuid.UUID]: ...

    async def find_by_containers(self, container_numbers: Sequence[str]) -> dict[str, list[uuid.UUID]]: ...


class SqlShipmentIndex:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_booking(self, booking_number: str) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(Shipment.id)
            .where(Shipment.booking_number == booking_number)
            .order_by(Shipment.id)
            .limit(MAX_CANDIDATES)
        )
        return list(result.scalars().all())

    async def find_by_bl(self, bl_number: str) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(Shipment.id)
            .where(Shipment.bl_number == bl_number)
            .order_by(Shipment.id)
            .limit(MAX_CANDIDATES)
        )
        return list(result.scalars().all())

    async def find_by_containers(self, container_numbers: Sequence[str]) -> dict[str, list[uuid.UUID]]:
        if not container_numbers:
            return {}
        result = await self.db.execute(
            select(ShipmentContainer.container_number, ShipmentContainer.shipment_id)
            .where(ShipmentContainer.container_number.in_(list(container_numbers)))
            .order_by(ShipmentContainer.container_number, ShipmentContainer.shipment_id)
            .limit(MAX_CANDIDATES * len(container_numbers))
        )
        hits: dict[str, list[uuid.UUID]] = {}
        for container, shipment_id in result.all():
            hits.setdefault(container, []).append(shipment_id)
        return hits


class InMemoryShipmentIndex:
    def __init__(self):
        self.bookings: dict[str, set[uuid.UUID]] = {}
        self.bls: dict[str, set[uuid.UUID]] = {}
        self.containers: dict[str, set[uuid.UUID]] = {}

    def add(
        self,
        shipment_id: uuid.UUID,
        booking_number: str | None = None,
        bl_number: str | None = None,
        container_numbers: Sequence[str] = (),
    ) -> None:
        if booking_number:
            self.bookings.setdefault(booking_number, set()).add(shipment_id)
        if bl_number:
            self.bls.setdefault(bl_number, set()).add(shipment_id)
        for container in container_numbers:
            self.containers.setdefault(container, set()).add(shipment_id)

    async def find_by_booking(self, booking_number: str) -> list[uuid.UUID]:
        return sorted(self.bookings.get(booking_number, ()), key=str)

    async def find_by_bl(self, bl_number: str) -> list[uuid.UUID]:
        return sorted(self.bls.get(bl_number, ()), key=str)

    async def find_by_containers(self, container_numbers: Sequence[str]) -> dict[str, list[uuid.UUID]]:
        return {
            c: sorted(self.containers[c], key=str)
            for c in container_numbers
            if c in self.containers
        }

"""Identifier index: immutable lookup snapshot from normalized identifier to shipments.

Container keys map to *every* shipment that ever carried the container so the
resolver can see container reuse instead of silently picking the latest one.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.identifiers import (
    BookingNumber,
    ContainerNumber,
    HouseBill,
    MasterBill,
    Reference,
    normalize_container,
    normalize_reference,
)
from shiplink.models.shipment import Shipment, ShipmentContainer, ShipmentStatus

logger = logging.getLogger("shiplink.index")

INACTIVE_STATUSES = frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.CLOSED, ShipmentStatus.CANCELLED})


class IndexSnapshotError(RuntimeError):
    """The identifier index could not be loaded; the batch run cannot start."""


@dataclass(frozen=True)
class ShipmentRef:
    """The identifier-bearing subset of a shipment the resolver needs."""

    id: uuid.UUID
    booking_number: str | None = None
    mbl_number: str | None = None
    hbl_number: str | None = None
    containers: tuple[str, ...] = ()
    status: ShipmentStatus = ShipmentStatus.OPEN
    last_activity_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES

    @property
    def booking_key(self) -> str | None:
        return normalize_reference(self.booking_number)

    @property
    def mbl_key(self) -> str | None:
        return normalize_reference(self.mbl_number)

    @property
    def hbl_key(self) -> str | None:
        return normalize_reference(self.hbl_number)

    @property
    def container_keys(self) -> frozenset[str]:
        return frozenset(k for k in (normalize_container(c) for c in self.containers) if k)


def _freeze(table: dict[str, set[uuid.UUID]]) -> MappingProxyType:
    return MappingProxyType({key: frozenset(ids) for key, ids in table.items()})


@dataclass(frozen=True)
class IdentifierIndex:
    bookings: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    mbls: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    hbls: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    containers: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    shipments: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(cls, refs: list[ShipmentRef]) -> "IdentifierIndex":
        """Build a snapshot from one scan of all shipments."""
        return cls().extend(refs)

    def extend(self, refs: list[ShipmentRef]) -> "IdentifierIndex":
        """Return a new snapshot that also covers ``refs``. A ref replaces any earlier one with the same id."""
        tables: dict[str, dict[str, set[uuid.UUID]]] = {
            name: {key: set(ids) for key, ids in getattr(self, name).items()}
            for name in ("bookings", "mbls", "hbls", "containers")
        }
        shipments = dict(self.shipments)

        for ref in refs:
            if ref.id in shipments:
                for table in tables.values():
                    for ids in table.values():
                        ids.discard(ref.id)
            shipments[ref.id] = ref
            for name, key in (("bookings", ref.booking_key), ("mbls", ref.mbl_key), ("hbls", ref.hbl_key)):
                if key:
                    tables[name].setdefault(key, set()).add(ref.id)
            for key in ref.container_keys:
                tables["containers"].setdefault(key, set()).add(ref.id)

        return replace(
            self,
            shipments=MappingProxyType(shipments),
            **{name: _freeze({k: v for k, v in table.items() if v}) for name, table in tables.items()},
        )

    def lookup(self, identifier: Reference) -> frozenset[uuid.UUID]:
        """Return the live shipment ids carrying this identifier."""
        if isinstance(identifier, BookingNumber):
            table = self.bookings
        elif isinstance(identifier, MasterBill):
            table = self.mbls
        elif isinstance(identifier, HouseBill):
            table = self.hbls
        elif isinstance(identifier, ContainerNumber):
            table = self.containers
        else:
            return frozenset()
        return frozenset(sid for sid in table.get(identifier.key, ()) if sid in self.shipments)

    def owners_of_reference(self, key: str) -> frozenset[uuid.UUID]:
        """Shipments whose booking, MBL or HBL equals ``key``."""
        return (
            self.bookings.get(key, frozenset())
            | self.mbls.get(key, frozenset())
            | self.hbls.get(key, frozenset())
        )

    def __len__(self) -> int:
        return len(self.shipments)


async def load_index_snapshot(db: AsyncSession) -> IdentifierIndex:
    """Scan all shipments once and build an index snapshot.

    Any database failure is fatal for the run and surfaces as IndexSnapshotError.
    """
    try:
        shipments = list((await db.execute(select(Shipment))).scalars().all())
        container_rows = (await db.execute(
            select(ShipmentContainer.shipment_id, ShipmentContainer.container_number)
        )).all()
    except SQLAlchemyError as e:
        raise IndexSnapshotError(f"Failed to load identifier index: {e}") from e

    secondary: dict[uuid.UUID, list[str]] = {}
    for shipment_id, container_number in container_rows:
        secondary.setdefault(shipment_id, []).append(container_number)

    refs = []
    for s in shipments:
        containers = [s.container_number_primary] if s.container_number_primary else []
        containers.extend(secondary.get(s.id, []))
        refs.append(ShipmentRef(
            id=s.id,
            booking_number=s.booking_number,
            mbl_number=s.mbl_number,
            hbl_number=s.hbl_number,
            containers=tuple(containers),
            status=s.status,
            last_activity_at=s.workflow_updated_at or s.updated_at or s.created_at,
        ))

    index = IdentifierIndex.build(refs)
    logger.info(
        "Identifier index loaded: %d shipments, %d bookings, %d mbls, %d hbls, %d containers",
        len(index), len(index.bookings), len(index.mbls), len(index.hbls), len(index.containers),
    )
    return index

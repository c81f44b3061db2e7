"""
Copies figées (snapshot) des données référencées par un bon de commande.

Capturées au moment où la ligne / l'en-tête est créé, jamais rafraîchies
ensuite : le PO garde l'image du fournisseur / de la pièce au moment de l'achat.
Mappées en composites SQLAlchemy sur PurchaseOrder / PurchaseOrderLine.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class VendorSnapshot:
    name: str | None
    phone: str | None
    address: str | None

    @classmethod
    def of(cls, vendor) -> "VendorSnapshot":
        return cls(name=vendor.name, phone=vendor.phone, address=vendor.address)


@dataclass(frozen=True)
class LocationSnapshot:
    name: str | None
    address: str | None

    @classmethod
    def of(cls, location) -> "LocationSnapshot":
        return cls(name=location.name, address=location.address)


@dataclass(frozen=True)
class PartSnapshot:
    part_number: str | None
    name: str | None
    measurement_unit: str | None
    manufacturer: str | None
    category: str | None

    @classmethod
    def of(cls, part) -> "PartSnapshot":
        return cls(
            part_number=part.part_number,
            name=part.name,
            measurement_unit=part.measurement_unit,
            manufacturer=part.manufacturer,
            category=part.category,
        )

"""Seed a starter equipment catalog through the inventory API."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass

import anyio
import httpx


@dataclass(frozen=True, slots=True)
class ItemSeed:
    """Catalog seed definition.

    Attributes
    ----------
    name : str
        Item display name, used to detect existing rows.
    category : str
        Catalog category.
    quantity : int
        Units on hand.
    location : str
        Storage location.
    description : str
        Short description.
    """

    name: str
    category: str
    quantity: int
    location: str
    description: str = ""


ITEMS: tuple[ItemSeed, ...] = (
    ItemSeed(
        name="Digital Multimeter",
        category="Electronics",
        quantity=8,
        location="Cabinet A1",
        description="Handheld autoranging multimeter",
    ),
    ItemSeed(
        name="Oscilloscope",
        category="Electronics",
        quantity=3,
        location="Bench 2",
        description="Two-channel 100 MHz digital oscilloscope",
    ),
    ItemSeed(
        name="Soldering Station",
        category="Tools",
        quantity=5,
        location="Cabinet B3",
    ),
    ItemSeed(
        name="Compound Microscope",
        category="Optics",
        quantity=4,
        location="Shelf C1",
        description="40x-1000x with LED illumination",
    ),
    ItemSeed(
        name="Arduino Uno Kit",
        category="Microcontrollers",
        quantity=10,
        location="Drawer D2",
    ),
)


async def existing_names(client: httpx.AsyncClient) -> set[str]:
    """Collect the names already present in the catalog.

    Parameters
    ----------
    client : httpx.AsyncClient
        Authenticated staff API client.

    Returns
    -------
    set[str]
        Lower-cased item names.
    """
    names: set[str] = set()
    page = 1
    while True:
        response = await client.get(
            "/v1/inventory", params={"page": page, "limit": 100}
        )
        response.raise_for_status()
        data = response.json()["data"]
        names.update(item["name"].lower() for item in data["items"])
        if not data["pagination"]["has_next"]:
            return names
        page += 1


async def main() -> None:
    """Create every seed item that is not in the catalog yet.

    Returns
    -------
    None
        Seeds missing items and prints a short summary.
    """
    base_url = os.environ.get("LAB_INVENTORY_BASE_URL", "http://127.0.0.1:8000")
    token = os.environ.get("LAB_INVENTORY_TOKEN")
    if not token:
        raise SystemExit("LAB_INVENTORY_TOKEN is required")

    headers = {"Authorization": f"Bearer {token}"}
    async with httpx.AsyncClient(
        base_url=base_url,
        headers=headers,
        timeout=10.0,
    ) as client:
        present = await existing_names(client)
        for item in ITEMS:
            if item.name.lower() in present:
                print(f"skipped {item.name}")
                continue
            response = await client.post("/v1/inventory", json=asdict(item))
            response.raise_for_status()
            print(f"seeded {item.name}")


if __name__ == "__main__":
    anyio.run(main)

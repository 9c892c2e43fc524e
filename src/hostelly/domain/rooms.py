"""Room catalog: the four dormitories of the hostel (45 beds)."""

from __future__ import annotations

from typing import Iterable

from hostelly.domain.models import Room, RoomType

ROOM_MIXTO_12A = "room_mixto_12a"
ROOM_MIXTO_12B = "room_mixto_12b"
ROOM_MIXTO_7 = "room_mixto_7"
ROOM_FLEXIBLE_7 = "room_flexible_7"

CATALOG: tuple[Room, ...] = (
    Room(id=ROOM_MIXTO_12A, name="Mixto 12A", capacity=12, type=RoomType.MIXED),
    Room(id=ROOM_MIXTO_12B, name="Mixto 12B", capacity=12, type=RoomType.MIXED),
    Room(id=ROOM_MIXTO_7, name="Mixto 7", capacity=7, type=RoomType.MIXED),
    Room(
        id=ROOM_FLEXIBLE_7,
        name="Flexible 7",
        capacity=7,
        type=RoomType.FEMALE,
        is_flexible=True,
    ),
)

# Rooms of at least this many beds count as "large" for group allocation.
LARGE_ROOM_CAPACITY = 12


def rooms_by_id(rooms: Iterable[Room] = CATALOG) -> dict[str, Room]:
    return {room.id: room for room in rooms}


def get_room(room_id: str, rooms: Iterable[Room] = CATALOG) -> Room | None:
    for room in rooms:
        if room.id == room_id:
            return room
    return None


def total_capacity(rooms: Iterable[Room] = CATALOG) -> int:
    return sum(room.capacity for room in rooms)


def flexible_room(rooms: Iterable[Room] = CATALOG) -> Room | None:
    for room in rooms:
        if room.is_flexible:
            return room
    return None

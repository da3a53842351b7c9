import argparse
import asyncio

from sqlalchemy import select

from gridchat.database import async_session, create_tables
from gridchat.models.championship import Championship
from gridchat.models.member import Member
from gridchat.services.room_registry import RoomRegistry

DEMO_MEMBERS = [
    ("Alice Apex", "apex_alice", True),
    ("Bob Brakes", "late_braker", False),
    ("Charlie Kerb", "kerb_hopper", False),
]

DEMO_CHAMPIONSHIPS = [
    ("GT3 Sprint Cup", "2026 S1"),
    ("Endurance Series", "2026 S1"),
]


async def async_main(with_demo: bool):
    await create_tables()

    async with async_session() as session:
        if with_demo:
            existing = set((await session.execute(select(Member.gamertag))).scalars())
            session.add_all([
                Member(display_name=name, gamertag=tag, is_admin=admin)
                for name, tag, admin in DEMO_MEMBERS
                if tag not in existing
            ])
            names = set((await session.execute(select(Championship.name))).scalars())
            session.add_all([
                Championship(name=name, season=season)
                for name, season in DEMO_CHAMPIONSHIPS
                if name not in names
            ])
            await session.commit()

        registry = RoomRegistry(session)
        general = await registry.ensure_general()
        print(f"General room: {general.name} ({general.id})")

        result = await session.execute(
            select(Championship).where(Championship.is_active.is_(True))
        )
        for championship in result.scalars().all():
            room = await registry.ensure_championship_room(championship)
            print(f"Championship room: {room.name} ({room.id})")

    print("Chat rooms seeded successfully.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the general room and one room per championship.")
    parser.add_argument("--demo", action="store_true", help="also insert demo members and championships")
    asyncio.run(async_main(parser.parse_args().demo))

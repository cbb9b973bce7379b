"""Seed demo users into the users table and write their ids to a file.

Usage: python -m scripts.seed_demo [--count 20] [--out demo_users.txt]
"""
import argparse
import asyncio
import random
import sys
sys.path.insert(0, ".")

from tandem.database import dispose_engine, session_scope
from tandem.models.user import User


DEMO_NAMES = [
    "Alice", "Bob", "Carol", "Dan", "Erin", "Frank", "Grace", "Heidi",
    "Ivan", "Judy", "Mallory", "Niaj", "Olivia", "Peggy", "Rupert", "Sybil",
    "Trent", "Uma", "Victor", "Wendy",
]

INTENTS = ["dating", "friendship", "networking"]


async def seed(count: int, out_path: str):
    ids = []
    async with session_scope() as session:
        for i in range(count):
            name = DEMO_NAMES[i % len(DEMO_NAMES)]
            user = User(
                display_name=f"{name} {i}" if i >= len(DEMO_NAMES) else name,
                age=random.randint(21, 45),
                intent=random.choice(INTENTS),
                photos=[],
            )
            session.add(user)
            await session.flush()
            ids.append(str(user.id))
            print(f"  Seeded {user.display_name} ({user.id})")

    with open(out_path, "w", encoding="utf-8") as f:
        f.write("\n".join(ids) + "\n")

    await dispose_engine()
    print(f"Done seeding {len(ids)} users -> {out_path}")


def main():
    parser = argparse.ArgumentParser(description="Seed Tandem demo users")
    parser.add_argument("--count", type=int, default=20)
    parser.add_argument("--out", type=str, default="demo_users.txt")
    args = parser.parse_args()
    asyncio.run(seed(args.count, args.out))


if __name__ == "__main__":
    main()

"""
Seed script: inserts a few demo handoffs, updates and an SMS reply token.
Run: python -m scripts.seed_dev
"""

import asyncio
import os
import sys

import asyncpg
from dotenv import load_dotenv

load_dotenv()

HANDOFFS = [
    {"summary": "Sterilizer 2 throwing temp alarm, tech called", "category": "equipment", "priority": "high", "location_code": "CS", "status": "open"},
    {"summary": "Short on peel packs for OR 4 case carts", "category": "supplies", "priority": "medium", "location_code": "OR", "status": "needs_followup"},
    {"summary": "Night shift coverage swap confirmed with NOC lead", "category": "staffing", "priority": "low", "location_code": "CS", "status": "resolved"},
]

UPDATES = {
    0: ["Vendor ETA 0900", "Load moved to sterilizer 1"],
    1: ["Ordered 2 cases from stores"],
}

DEMO_TOKEN = "DEMO01"


async def seed():
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL not set in .env")
        sys.exit(1)

    conn = await asyncpg.connect(database_url)

    try:
        existing = await conn.fetchval("SELECT handoff_id FROM handoff_tokens WHERE token = $1", DEMO_TOKEN)
        if existing:
            print(f"Demo data already present (token {DEMO_TOKEN} -> {existing}). Skipping seed.")
            return

        ids = []
        for h in HANDOFFS:
            row = await conn.fetchrow(
                """
                INSERT INTO handoffs (summary, category, priority, location_code, status, created_by_display_name_snapshot)
                VALUES ($1, $2, $3, $4, $5, 'SEED')
                RETURNING id
                """,
                h["summary"], h["category"], h["priority"], h["location_code"], h["status"],
            )
            ids.append(row["id"])
            print(f"Created handoff: {h['summary'][:40]} (id={row['id']})")

        for index, messages in UPDATES.items():
            for message in messages:
                await conn.execute(
                    """
                    INSERT INTO handoff_updates (handoff_id, author_display_name_snapshot, source, message)
                    VALUES ($1, 'SEED', 'system', $2)
                    """,
                    ids[index], message,
                )
        print(f"Created {sum(len(m) for m in UPDATES.values())} updates")

        await conn.execute("INSERT INTO handoff_tokens (token, handoff_id) VALUES ($1, $2)", DEMO_TOKEN, ids[0])
        print(f"Reply token H:{DEMO_TOKEN} -> {ids[0]}")
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(seed())

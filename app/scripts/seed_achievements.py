# app/scripts/seed_achievements.py
import asyncio
import logging

from app.controllers.achievement_controller import seed_default_achievements

async def main():
    result = await seed_default_achievements()
    print(f"Seeded {result.total} achievements ({result.upserted} new, {result.modified} updated)")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())

"""
Seed the database with sample data.

Creates an admin, a few businesses with their portal users, and last week's
customer transactions so a cycle for the current week has something to
verify.

Run: python seed_database.py
"""
import random
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from config import settings
from config.database import to_sync_url
from core.security import get_password_hash
from db_base import Base
from db_models.business import Business, Transaction
from db_models.user import User, UserRole


ADMIN = {
    "email": "admin@example.com",
    "password": "admin12345",
    "full_name": "Platform Administrator",
}

BUSINESSES = [
    {"name": "Kaffebaren Södermalm", "email": "ekonomi@kaffebaren.example", "reward_percentage": "5.00"},
    {"name": "Bokhandeln Vasastan", "email": "kassa@bokhandeln.example", "reward_percentage": "3.50"},
    {"name": "Cykelverkstan", "email": None, "reward_percentage": "4.00"},
]

TRANSACTIONS_PER_BUSINESS = 12


def previous_week_window(today: datetime) -> tuple[datetime, datetime]:
    monday = (today - timedelta(days=today.weekday())).date()
    end = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    return end - timedelta(days=7), end


def random_phone(rng: random.Random) -> str:
    # Mostly Swedish mobiles; every tenth one is a landline that payouts reject
    if rng.random() < 0.1:
        return f"+468{rng.randint(1000000, 9999999)}"
    return f"+467{rng.randint(0, 99_999_999):08d}"


def seed_database(seed: int = 42) -> None:
    rng = random.Random(seed)
    engine = create_engine(to_sync_url(settings.DATABASE_URL))
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine)

    with Session() as session:
        if session.execute(select(func.count(User.id))).scalar():
            print("Database already has users; skipping seed")
            return

        session.add(
            User(
                email=ADMIN["email"],
                hashed_password=get_password_hash(ADMIN["password"]),
                full_name=ADMIN["full_name"],
                role=UserRole.ADMIN.value,
            )
        )
        print(f"  Added admin: {ADMIN['email']} / {ADMIN['password']}")

        start, end = previous_week_window(datetime.now(timezone.utc))
        window_seconds = int((end - start).total_seconds())

        for index, profile in enumerate(BUSINESSES, start=1):
            business = Business(name=profile["name"], email=profile["email"])
            session.add(business)
            session.flush()

            session.add(
                User(
                    email=f"owner{index}@example.com",
                    hashed_password=get_password_hash("business123"),
                    full_name=f"{profile['name']} owner",
                    role=UserRole.BUSINESS.value,
                    business_id=business.id,
                )
            )

            for _ in range(TRANSACTIONS_PER_BUSINESS):
                session.add(
                    Transaction(
                        business_id=business.id,
                        phone_number=random_phone(rng),
                        amount=Decimal(rng.randint(2500, 95000)) / 100,
                        reward_percentage=Decimal(profile["reward_percentage"]),
                        transaction_date=start + timedelta(seconds=rng.randrange(window_seconds)),
                    )
                )
            print(f"  Added business: {business.name} ({TRANSACTIONS_PER_BUSINESS} transactions)")

        session.commit()

    print("[OK] Seed complete")


if __name__ == "__main__":
    print("=" * 60)
    print("DATABASE SEEDING SCRIPT")
    print("=" * 60)
    seed_database()

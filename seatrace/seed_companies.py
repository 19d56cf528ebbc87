"""
Database seeding script for development companies and users.

Creates one company of each type with an operator, plus a super admin, and
prints a bearer token for each user.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from seatrace.app.db.session import AsyncSessionLocal, engine, Base
from seatrace.app.models.company import Company
from seatrace.app.models.user import User
from seatrace.app.models.enums import UserRole, CompanyType
from seatrace.app.core.jwt import create_access_token
from sqlalchemy import select

# (company name, type, placeholder chain address, operator username, operator name)
SEED_COMPANIES = [
    ("Xiamen Seafood Co.", CompanyType.PRODUCER, "0x" + "1" * 40, "producer_op", "Chen Wei"),
    ("Fujian Cold Chain Logistics", CompanyType.SHIPPER, "0x" + "2" * 40, "shipper_op", "Lin Hao"),
    ("Fuzhou Port Inspection", CompanyType.INSPECTOR, "0x" + "3" * 40, "inspector_op", "Wang Fang"),
    ("Fuzhou Fresh Market", CompanyType.DEALER, "0x" + "4" * 40, "dealer_op", "Zhang Min"),
]


def _token_for(user: User) -> str:
    return create_access_token(data={
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
        "company_id": user.company_id,
    })


async def seed_companies():
    """
    Seed one company per type with an operator, and a super admin.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting company seeding...")

        result = await db.execute(select(User).where(User.username == "admin"))
        if result.scalar_one_or_none():
            print("Seed data already exists, skipping seeding")
            return

        admin = User(username="admin", real_name="Platform Admin", role=UserRole.SUPER_ADMIN, company_id=None)
        db.add(admin)

        users = [admin]
        for name, company_type, address, username, real_name in SEED_COMPANIES:
            company = Company(company_name=name, company_type=company_type, blockchain_address=address)
            db.add(company)
            await db.flush()

            operator = User(username=username, real_name=real_name, role=UserRole.OPERATOR, company_id=company.id)
            db.add(operator)
            users.append(operator)
            print(f"Created {company_type.value} company '{name}' with operator '{username}'")

        await db.commit()
        for user in users:
            await db.refresh(user)

        print("\nSeeding completed. Bearer tokens:")
        for user in users:
            print(f"  - {user.username:<14} {_token_for(user)}")


if __name__ == "__main__":
    asyncio.run(seed_companies())

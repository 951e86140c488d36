#!/usr/bin/env python3
"""
Script to create a staff user for the Tellus CRM API.

Usage:
    python scripts/create_admin_user.py --email admin@tellus.com.br --name "Admin" --password "change-me"
    python scripts/create_admin_user.py --email ana@tellus.com.br --name "Ana" --password "..." --role user
"""

import asyncio
import argparse
import sys
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from tellus_crm.database import AsyncSessionLocal, init_db, close_db
from tellus_crm.services.auth_service import AuthService
from tellus_crm.core.exceptions import BadRequestError


async def create_user(email: str, name: str, password: str, role: str) -> int:
    """Create the user and return its ID."""
    async with AsyncSessionLocal() as session:
        user = await AuthService.create_user(session, email=email, name=name, password=password, role=role)
        return user.id


async def main() -> int:
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Create a staff user for the Tellus CRM API"
    )
    parser.add_argument("--email", required=True, help="Login email (required)")
    parser.add_argument("--name", required=True, help="Display name (required)")
    parser.add_argument("--password", required=True, help="Password, at least 6 characters (required)")
    parser.add_argument("--role", default="admin", choices=["admin", "user"], help="Role (default: admin)")

    args = parser.parse_args()

    if len(args.password) < 6:
        print("Error: password must have at least 6 characters", file=sys.stderr)
        return 1

    await init_db()

    try:
        user_id = await create_user(args.email, args.name, args.password, args.role)
    except BadRequestError as e:
        print(f"Error creating user: {e.detail}", file=sys.stderr)
        return 1
    finally:
        await close_db()

    print("\n" + "="*60)
    print("USER CREATED SUCCESSFULLY")
    print("="*60)
    print(f"ID:    {user_id}")
    print(f"Email: {args.email.strip().lower()}")
    print(f"Name:  {args.name}")
    print(f"Role:  {args.role}")
    print("="*60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

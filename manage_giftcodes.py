"""
🎁 GIFT CODE MANAGEMENT HELPER
Quick script to create and manage gift codes in the database.

Usage:
    python manage_giftcodes.py --create "TET2025" --coins 100 --exp 20 --max-uses 500 --expires 2025-02-15 --voucher 3
    python manage_giftcodes.py --list
    python manage_giftcodes.py --deactivate "TET2025"
    python manage_giftcodes.py --activate "TET2025"
    python manage_giftcodes.py --delete "TET2025"
    python manage_giftcodes.py --stats "TET2025"
"""

import sys
import os
import logging
from datetime import datetime

# Add the app directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.database import SessionLocal, Base, engine
from app.models.user import User  # noqa: F401
from app.models.voucher import Voucher
from app.models.gift_code import GiftCode
from app.services.normalize import normalize_code

logger = logging.getLogger("manage_giftcodes")


def create_gift_code(code, coins=0, exp=0, max_uses=1, expires=None, voucher_id=None):
    """Create a new gift code"""
    db = SessionLocal()

    try:
        code = normalize_code(code)

        # Check if code already exists
        existing = db.query(GiftCode).filter(GiftCode.code == code).first()
        if existing:
            print(f"❌ Gift code '{code}' already exists!")
            return False

        if min(coins, exp, max_uses) < 0:
            print("❌ Coins, EXP and max uses must be non-negative")
            return False

        if voucher_id and not db.query(Voucher).filter(Voucher.id == voucher_id).first():
            print(f"❌ Voucher #{voucher_id} not found!")
            return False

        # Parse expiry date if provided
        expiry_date = None
        if expires:
            try:
                expiry_date = datetime.fromisoformat(expires)
            except ValueError:
                print("❌ Invalid date format. Use YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS")
                return False

        gift_code = GiftCode(
            code=code,
            coin_reward=coins,
            exp_reward=exp,
            usage_limit=max_uses,
            expiry_date=expiry_date,
            voucher_id=voucher_id,
            is_active=True
        )

        db.add(gift_code)
        db.commit()

        logger.info("Gift code %s created from the command line", gift_code.code)
        print("✅ Gift code created successfully!")
        print(f"   Code: {gift_code.code}")
        print(f"   Coins: {gift_code.coin_reward}")
        print(f"   EXP: {gift_code.exp_reward}")
        print(f"   Voucher: {gift_code.voucher_id if gift_code.voucher_id else 'None'}")
        print(f"   Max Uses: {gift_code.usage_limit if gift_code.usage_limit else 'Unlimited'}")
        print(f"   Expires: {gift_code.expiry_date.isoformat() if gift_code.expiry_date else 'Never'}")
        print(f"   Active: {gift_code.is_active}")

        return True
    finally:
        db.close()


def list_gift_codes():
    """List all gift codes"""
    db = SessionLocal()

    try:
        gift_codes = db.query(GiftCode).order_by(GiftCode.id.desc()).all()

        if not gift_codes:
            print("No gift codes found.")
            return []

        print("\n📋 GIFT CODES:\n")
        print(f"{'Code':<20} {'Coins':<8} {'EXP':<8} {'Uses':<15} {'Status':<15} {'Expires':<20}")
        print("-" * 90)

        for g in gift_codes:
            status = "🟢 Active" if g.is_active else "🔴 Inactive"
            expires = g.expiry_date.strftime("%Y-%m-%d") if g.expiry_date else "Never"
            uses = f"{g.used_count}/{g.usage_limit}" if g.usage_limit else f"{g.used_count}/∞"
            print(f"{g.code:<20} {g.coin_reward:<8} {g.exp_reward:<8} {uses:<15} {status:<15} {expires:<20}")

        print()
        return [g.code for g in gift_codes]
    finally:
        db.close()


def set_gift_code_active(code, is_active):
    """Activate or deactivate a gift code"""
    db = SessionLocal()

    try:
        gift_code = db.query(GiftCode).filter(GiftCode.code == normalize_code(code)).first()

        if not gift_code:
            print(f"❌ Gift code '{code}' not found!")
            return False

        gift_code.is_active = is_active
        db.commit()

        print(f"✅ Gift code '{code}' has been {'activated' if is_active else 'deactivated'}")
        return True
    finally:
        db.close()


def delete_gift_code(code):
    """Delete a gift code"""
    db = SessionLocal()

    try:
        gift_code = db.query(GiftCode).filter(GiftCode.code == normalize_code(code)).first()

        if not gift_code:
            print(f"❌ Gift code '{code}' not found!")
            return False

        db.delete(gift_code)
        db.commit()

        print(f"✅ Gift code '{code}' has been deleted")
        return True
    finally:
        db.close()


def get_gift_code_stats(code):
    """Get detailed stats for a gift code"""
    db = SessionLocal()

    try:
        gift_code = db.query(GiftCode).filter(GiftCode.code == normalize_code(code)).first()

        if not gift_code:
            print(f"❌ Gift code '{code}' not found!")
            return False

        is_expired = gift_code.expiry_date < datetime.utcnow() if gift_code.expiry_date else False

        print(f"\n📊 GIFT CODE STATS: {gift_code.code}\n")
        print(f"Coin Reward:     {gift_code.coin_reward}")
        print(f"EXP Reward:      {gift_code.exp_reward}")
        print(f"Voucher:         {gift_code.voucher_id if gift_code.voucher_id else 'None'}")
        print(f"Status:          {'🟢 Active' if gift_code.is_active else '🔴 Inactive'}")
        print(f"Created:         {gift_code.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"Used Count:      {gift_code.used_count}")
        print(f"Max Uses:        {gift_code.usage_limit if gift_code.usage_limit else 'Unlimited'}")

        if gift_code.usage_limit:
            usage_pct = (gift_code.used_count / gift_code.usage_limit) * 100
            remaining = gift_code.usage_limit - gift_code.used_count
            print(f"Usage:           {usage_pct:.1f}% ({remaining} remaining)")

        print(f"Expires:         {gift_code.expiry_date.strftime('%Y-%m-%d') if gift_code.expiry_date else 'Never'}")
        print(f"Expired:         {'Yes ⚠️' if is_expired else 'No'}")
        print()

        return True
    finally:
        db.close()


def parse_create_args(args):
    """Parse `<code> [--coins N] [--exp N] [--max-uses N] [--expires DATE] [--voucher ID]`."""
    options = {"code": args[0], "coins": 0, "exp": 0, "max_uses": 1, "expires": None, "voucher_id": None}
    flags = {"--coins": ("coins", int), "--exp": ("exp", int), "--max-uses": ("max_uses", int),
             "--expires": ("expires", str), "--voucher": ("voucher_id", int)}

    i = 1
    while i < len(args):
        if args[i] in flags and i + 1 < len(args):
            name, cast = flags[args[i]]
            options[name] = cast(args[i + 1])
            i += 2
        else:
            i += 1

    return options


def main(argv):
    if len(argv) < 2:
        print(__doc__)
        return 1

    command = argv[1]
    single_code_commands = {
        "--activate": lambda code: set_gift_code_active(code, True),
        "--deactivate": lambda code: set_gift_code_active(code, False),
        "--delete": delete_gift_code,
        "--stats": get_gift_code_stats,
    }

    if command == "--create":
        if len(argv) < 3:
            print("Usage: python manage_giftcodes.py --create <code> [--coins N] [--exp N] [--max-uses N] [--expires YYYY-MM-DD] [--voucher ID]")
            return 1
        return 0 if create_gift_code(**parse_create_args(argv[2:])) else 1

    if command == "--list":
        list_gift_codes()
        return 0

    if command in single_code_commands:
        if len(argv) < 3:
            print(f"Usage: python manage_giftcodes.py {command} <code>")
            return 1
        return 0 if single_code_commands[command](argv[2]) else 1

    print(f"Unknown command: {command}")
    print(__doc__)
    return 1


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    sys.exit(main(sys.argv))

"""
Create the first secretariat account (secretary or president).
Usage: python scripts/create_operator.py --first-names Amina --last-name SAID --phone +2693300000
"""
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from adhesion.db.base import SessionLocal
from adhesion.core.security import get_password_hash
from adhesion.models.member import Member, MemberRole, MemberStatus
from adhesion.services.auth import generate_temporary_password, generate_username
from adhesion.services.references import next_membership_reference


def create_operator(first_names: str, last_name: str, phone: str, email: str = None, role: str = "secretary", password: str = None):
    """Create an operator account that must change its password at first login."""
    db = SessionLocal()
    try:
        member_role = MemberRole(role)
        if member_role == MemberRole.MEMBER:
            print("Operators must have the secretary or president role.")
            return

        existing = db.query(Member).filter(Member.phone == phone).first()
        if existing:
            print(f"A member with phone {phone} already exists!")
            return

        username = generate_username(db, first_names, last_name)
        password = password or generate_temporary_password()
        operator = Member(
            membership_reference=next_membership_reference(db, member_role),
            role=member_role,
            status=MemberStatus.PENDING,
            first_names=first_names,
            last_name=last_name.upper(),
            phone=phone,
            email=email,
            username=username,
            password_hash=get_password_hash(password),
            must_change_password=True,
            has_paid=True,
        )
        db.add(operator)
        db.commit()
        print("Operator account created successfully!")
        print(f"   Username: {username}")
        print(f"   Password: {password}")
        print(f"   Role: {member_role.value}")
        print("\nThe password must be changed at first login.")

    except Exception as e:
        db.rollback()
        print(f"Error creating operator: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Create a secretariat account")
    parser.add_argument("--first-names", required=True, help="First names")
    parser.add_argument("--last-name", required=True, help="Last name")
    parser.add_argument("--phone", required=True, help="Phone number")
    parser.add_argument("--email", default=None, help="Email address")
    parser.add_argument("--role", default="secretary", choices=["secretary", "president"], help="Operator role")
    parser.add_argument("--password", default=None, help="Initial password (generated if omitted)")

    args = parser.parse_args()

    create_operator(
        first_names=args.first_names,
        last_name=args.last_name,
        phone=args.phone,
        email=args.email,
        role=args.role,
        password=args.password,
    )

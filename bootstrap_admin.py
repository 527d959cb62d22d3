#!/usr/bin/env python3
"""
Create or promote an administrator account in the House Leads SQLite database.

Administrators cannot sign up through the API, so the first one is
created from the command line.  If an account with the phone number
already exists its role is changed to ``admin``; otherwise a new
account is inserted.  Optionally prints a long-lived bearer token.

Usage:
    python bootstrap_admin.py --phone 0900000000 --name "Quan Tri"
    python bootstrap_admin.py --db ./house_leads_api/house_leads.db --phone 0900000000 --print-token
"""

import argparse
import os
import sys

from house_leads_api.app.core import db
from house_leads_api.app.core.config import settings
from house_leads_api.app.core.enums import Role
from house_leads_api.app.core.security import create_access_token
from house_leads_api.app.services.account_service import PHONE_RE


def main():
    ap = argparse.ArgumentParser(description="Create or promote a House Leads administrator.")
    ap.add_argument("--db", help="Path to SQLite DB file (defaults to DATABASE_URL)")
    ap.add_argument("--phone", required=True, help="Phone number used to log in")
    ap.add_argument("--name", help="Full name (required when the account does not exist yet)")
    ap.add_argument("--print-token", action="store_true", help="Print a bearer token valid for 365 days")
    args = ap.parse_args()

    if args.db:
        settings.database_url = os.path.abspath(args.db)
    phone = args.phone.strip()
    if not PHONE_RE.match(phone):
        print("[!] Phone number must have 10-11 digits.", file=sys.stderr)
        sys.exit(1)

    db.init_db()
    conn = db.get_connection()
    try:
        cur = conn.cursor()
        row = cur.execute("SELECT id, full_name FROM Account WHERE phone_number = ?", (phone,)).fetchone()
        if row:
            account_id = row["id"]
            cur.execute("UPDATE Account SET role = ? WHERE id = ?", (Role.ADMIN.value, account_id))
            print(f"[+] Account {row['full_name']} ({phone}) is now an administrator")
        else:
            if not args.name or len(args.name.strip()) < 2:
                print("[!] --name is required for a new account (at least 2 characters).", file=sys.stderr)
                sys.exit(2)
            cur.execute(
                "INSERT INTO Account (full_name, phone_number, role, created_at) VALUES (?, ?, ?, ?)",
                (args.name.strip(), phone, Role.ADMIN.value, db.now_iso()),
            )
            account_id = cur.lastrowid
            print(f"[+] Administrator created: {args.name.strip()} ({phone})")
        conn.commit()
    finally:
        conn.close()

    if args.print_token:
        print(create_access_token({"sub": str(account_id)}, expires_delta=365 * 24 * 60 * 60))


if __name__ == "__main__":
    main()

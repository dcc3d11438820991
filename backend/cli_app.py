#!/usr/bin/env python3
"""
SDK Admin Portal auth CLI.

Maintenance commands for accounts, driver PINs, sessions and trusted
devices. Every command runs non-interactively so it can be scripted.
"""

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional


class Colors:
    """ANSI colors for terminal"""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"


def info(msg):
    print(f"{Colors.BLUE}[INFO]{Colors.RESET} {msg}")


def success(msg):
    print(f"{Colors.GREEN}[OK]{Colors.RESET} {msg}")


def warn(msg):
    print(f"{Colors.YELLOW}[WARN]{Colors.RESET} {msg}")


def error(msg):
    print(f"{Colors.RED}[ERROR]{Colors.RESET} {msg}")


def _split_roles(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [r.strip() for r in value.split(",") if r.strip()]


class AdminPortalCLI:
    """Command dispatcher. Each command returns a process exit code."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _sessions(self):
        if self._session_factory is None:
            from db.database import AsyncSessionLocal

            self._session_factory = AsyncSessionLocal
        return self._session_factory

    async def init_db(self, args) -> int:
        from db.database import init_db

        await init_db()
        success("Database tables created")
        return 0

    async def create_user(self, args) -> int:
        from sqlalchemy import func, select

        from models.user import User
        from services.passwords import hash_secret

        email = args.email.strip().lower()
        async with self._sessions()() as db:
            result = await db.execute(select(User).where(func.lower(User.email) == email))
            user = result.scalar_one_or_none()
            created = user is None
            if created:
                user = User(email=email)
                db.add(user)

            user.password_hash = hash_secret(args.password)
            user.name = args.name or user.name
            user.role = args.role
            user.roles = _split_roles(args.roles)
            user.is_active = True
            await db.commit()

            verb = "Created" if created else "Updated"
            success(f"{verb} user {email} (id={user.id}, role={user.role})")
        return 0

    async def set_driver_pin(self, args) -> int:
        from sqlalchemy import select

        from models.driver import Driver
        from services.passwords import hash_secret

        if not args.pin.isdigit() or not 4 <= len(args.pin) <= 12:
            error("PIN must be 4-12 digits")
            return 1

        async with self._sessions()() as db:
            result = await db.execute(select(Driver).where(Driver.driver_code == args.driver_code))
            driver = result.scalar_one_or_none()
            if driver is None:
                if not args.create:
                    error(f"Driver {args.driver_code} not found (use --create)")
                    return 1
                driver = Driver(driver_code=args.driver_code, name=args.name, active=True)
                db.add(driver)

            driver.pin_hash = hash_secret(args.pin)
            driver.pin_failed_attempts = 0
            driver.pin_locked_until = None
            driver.pin_expires_at = (
                datetime.now(timezone.utc) + timedelta(days=args.expires_days)
                if args.expires_days
                else None
            )
            await db.commit()
            success(f"PIN set for driver {args.driver_code} (id={driver.id})")
        return 0

    async def list_sessions(self, args) -> int:
        from services.sessions import SessionStore

        async with self._sessions()() as db:
            sessions = await SessionStore(db).list_active()
            if not sessions:
                info("No active sessions")
                return 0

            print(f"{Colors.BOLD}{'ID':>6}  {'USER':<32} {'PLATFORM':<10} {'LAST SEEN':<20} EXPIRES{Colors.RESET}")
            for s in sessions:
                email = s.user.email if s.user is not None else f"#{s.user_id}"
                last_seen = s.last_seen_at.strftime("%Y-%m-%d %H:%M:%S") if s.last_seen_at else "-"
                expires = s.expires_at.strftime("%Y-%m-%d %H:%M:%S")
                print(f"{s.id:>6}  {email:<32} {s.platform:<10} {last_seen:<20} {expires}")
            info(f"{len(sessions)} active session(s)")
        return 0

    async def revoke_session(self, args) -> int:
        from services.sessions import SessionStore

        async with self._sessions()() as db:
            revoked = await SessionStore(db).revoke(args.session_id, args.reason)
            await db.commit()

        if revoked:
            success(f"Session {args.session_id} revoked ({args.reason})")
            return 0
        warn(f"Session {args.session_id} not found or already revoked")
        return 1

    async def revoke_device(self, args) -> int:
        from services.driverapp import revoke_trusted_device

        async with self._sessions()() as db:
            revoked = await revoke_trusted_device(db, args.device_id, args.reason)
            await db.commit()

        if revoked:
            success(f"Device {args.device_id} revoked ({args.reason})")
            return 0
        warn(f"Device {args.device_id} not found or already revoked")
        return 1

    def serve(self, args) -> int:
        import uvicorn

        info(f"Backend: http://{args.host}:{args.port}")
        info(f"API Docs: http://{args.host}:{args.port}/docs")
        print(f"\n{Colors.DIM}Press Ctrl+C to stop{Colors.RESET}\n")
        uvicorn.run("main:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="sdk-admin-auth", description="SDK Admin Portal auth maintenance"
        )
        sub = parser.add_subparsers(dest="command", required=True)

        sub.add_parser("init-db", help="Create database tables")

        p = sub.add_parser("create-user", help="Create or update a portal user")
        p.add_argument("--email", required=True)
        p.add_argument("--password", required=True)
        p.add_argument("--name")
        p.add_argument("--role", default="staff", help="Primary role (e.g. admin, manager, staff)")
        p.add_argument("--roles", help="Additional roles, comma-separated")

        p = sub.add_parser("set-driver-pin", help="Set a driver's PIN and clear lockout")
        p.add_argument("--driver-code", required=True)
        p.add_argument("--pin", required=True)
        p.add_argument("--name")
        p.add_argument("--create", action="store_true", help="Create the driver if missing")
        p.add_argument("--expires-days", type=int, default=0, help="PIN validity in days (0 = never)")

        sub.add_parser("list-sessions", help="List active portal sessions")

        p = sub.add_parser("revoke-session", help="Revoke a portal session")
        p.add_argument("session_id", type=int)
        p.add_argument("--reason", default="revoked_by_admin")

        p = sub.add_parser("revoke-device", help="Revoke a driver trusted device")
        p.add_argument("device_id")
        p.add_argument("--reason", default="revoked_by_admin")

        p = sub.add_parser("serve", help="Start the API server")
        p.add_argument("--host", default="127.0.0.1")
        p.add_argument("--port", type=int, default=8000)
        p.add_argument("--reload", action="store_true")

        return parser

    def run(self, argv: Optional[list[str]] = None) -> int:
        args = self.build_parser().parse_args(argv)

        if args.command == "serve":
            return self.serve(args)

        handler = getattr(self, args.command.replace("-", "_"))
        try:
            return asyncio.run(handler(args))
        except KeyboardInterrupt:
            warn("Interrupted")
            return 130


if __name__ == "__main__":
    sys.exit(AdminPortalCLI().run())

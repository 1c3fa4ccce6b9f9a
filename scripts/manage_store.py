"""CLI for store management.

Usage::

    uv run python -m scripts.manage_store <command> [options]

Commands:
    create-store    Create a new store
    list-stores     List all stores
    set-tier        Change a store's subscription tier
    suspend-store   Suspend a store (it resolves to the default tenant)
    issue-token     Print a signed session token for local testing
"""

from __future__ import annotations

import argparse
import sys
import uuid
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from storefront.auth.session import Role, SessionAuthenticator, SessionUser, UserStatus
from storefront.config import settings
from storefront.storage.orm import Store
from storefront.tenancy.classifier import TenantClassifier
from storefront.tenancy.context import TenantStatus
from storefront.tenancy.tiers import Tier


def get_sync_session() -> Session:
    """Create sync session for CLI operations.

    Uses the same database URL as the async app (psycopg v3
    handles both sync and async natively).
    """
    engine = create_engine(settings.database_url)
    return Session(engine)


def get_classifier() -> TenantClassifier:
    return TenantClassifier(
        base_domain=settings.base_domain,
        reserved_subdomains=settings.reserved_subdomains,
        reserved_routes=settings.reserved_routes,
    )


def _get_store_or_exit(session: Session, slug: str) -> Store:
    store = session.execute(
        select(Store).where(Store.slug == slug.lower())
    ).scalar_one_or_none()
    if store is None:
        print(f"Store not found: {slug}", file=sys.stderr)
        sys.exit(1)
    return store


def create_store(args: argparse.Namespace) -> None:
    """Create a new store."""
    slug = args.slug.lower()
    if get_classifier().is_reserved_slug(slug):
        print(f"Slug is reserved or invalid: {args.slug}", file=sys.stderr)
        sys.exit(1)

    with get_sync_session() as session:
        existing = session.execute(
            select(Store).where(Store.slug == slug)
        ).scalar_one_or_none()
        if existing is not None:
            print(f"Store already exists: {slug}", file=sys.stderr)
            sys.exit(1)

        store = Store(slug=slug, name=args.name, email=args.email, tier=args.tier)
        session.add(store)
        session.commit()
        print(f"Store created: {slug} (tier: {args.tier}, id: {store.id})")


def list_stores(_args: argparse.Namespace) -> None:
    """List all stores with tier and status."""
    with get_sync_session() as session:
        stores = session.execute(select(Store).order_by(Store.slug)).scalars().all()

        if not stores:
            print("No stores found.")
            return

        print("Stores:")
        for i, store in enumerate(stores, 1):
            print(f"  {i}. {store.slug} [{store.tier}] {store.status} - {store.name}")


def set_tier(args: argparse.Namespace) -> None:
    """Change a store's subscription tier."""
    with get_sync_session() as session:
        store = _get_store_or_exit(session, args.slug)
        if store.tier == args.tier:
            print(f"Store {store.slug} is already on {args.tier}", file=sys.stderr)
            sys.exit(1)

        previous = store.tier
        store.tier = args.tier
        session.commit()
        print(f"Store {store.slug}: {previous} -> {args.tier}")


def suspend_store(args: argparse.Namespace) -> None:
    """Suspend a store."""
    with get_sync_session() as session:
        store = _get_store_or_exit(session, args.slug)
        if store.status == TenantStatus.SUSPENDED:
            print(f"Store already suspended: {store.slug}", file=sys.stderr)
            sys.exit(1)

        store.status = str(TenantStatus.SUSPENDED)
        session.commit()
        print(f"Store suspended: {store.slug}")


def issue_token(args: argparse.Namespace) -> None:
    """Print a session token signed with the configured secret."""
    if args.role == Role.STORE_OWNER and not args.tenant:
        print("Store owners need --tenant", file=sys.stderr)
        sys.exit(1)

    authenticator = SessionAuthenticator(
        settings.jwt_secret.get_secret_value(), settings.jwt_algorithm
    )
    user = SessionUser(
        id=args.user_id,
        email=args.email,
        role=Role(args.role),
        status=UserStatus.ACTIVE,
        session_id=str(uuid.uuid4()),
        tenant_id=args.tenant,
    )
    token = authenticator.issue(user, timedelta(seconds=settings.session_ttl_seconds))
    print(token)


def main() -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="Store management CLI")
    sub = parser.add_subparsers(dest="command", required=True)
    tiers = [str(t) for t in Tier]

    p = sub.add_parser("create-store", help="Create a new store")
    p.add_argument("--slug", required=True, help="URL slug (subdomain / first path segment)")
    p.add_argument("--name", required=True, help="Display name")
    p.add_argument("--email", default=None, help="Owner contact email")
    p.add_argument("--tier", choices=tiers, default=str(Tier.STARTER))

    sub.add_parser("list-stores", help="List all stores")

    p = sub.add_parser("set-tier", help="Change a store's tier")
    p.add_argument("--slug", required=True, help="Store slug")
    p.add_argument("--tier", choices=tiers, required=True)

    p = sub.add_parser("suspend-store", help="Suspend a store")
    p.add_argument("--slug", required=True, help="Store slug")

    p = sub.add_parser("issue-token", help="Print a session token")
    p.add_argument("--user-id", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--role", choices=[str(r) for r in Role], required=True)
    p.add_argument("--tenant", default=None, help="Owned store slug (store owners)")

    args = parser.parse_args()
    commands: dict[str, Callable[[argparse.Namespace], None]] = {
        "create-store": create_store,
        "list-stores": list_stores,
        "set-tier": set_tier,
        "suspend-store": suspend_store,
        "issue-token": issue_token,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()

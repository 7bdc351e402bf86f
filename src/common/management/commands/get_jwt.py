"""Mint a development access token for an identity provider subject."""

import typing as t

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from ninja_jwt.tokens import AccessToken

from accounts.service import provision_user


class Command(BaseCommand):
    """Mint a signed access token as the identity provider would, for local development."""

    help = "Mint a development access token for a subject, provisioning the user if needed."

    def add_arguments(self, parser: t.Any) -> None:
        """Add command arguments."""
        parser.add_argument("subject", type=str, help="Identity provider subject (the `sub` claim)")
        parser.add_argument("--email", type=str, default="", help="Email claim")
        parser.add_argument("--name", type=str, default="", help="Name claim")

    def handle(self, *args: t.Any, **options: t.Any) -> None:
        """Generate the token."""
        if not settings.DEBUG:
            raise CommandError("Development tokens can only be minted with DEBUG enabled.")

        claims = {"email": options["email"], "name": options["name"]}
        user = provision_user(options["subject"], claims=claims)

        token = AccessToken.for_user(user)
        for claim, value in claims.items():
            if value:
                token[claim] = value

        self.stdout.write(self.style.SUCCESS(f"User ID: {user.id}"))
        self.stdout.write(str(token))

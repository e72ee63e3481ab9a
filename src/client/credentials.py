"""Synthetic credentials and the registration step that turns them into a token."""
import logging
from typing import Optional
from faker import Faker

from src.client.api_client import PostsApiClient
from src.client.models import Credentials

logger = logging.getLogger(__name__)

_faker = Faker()


def generate_credentials(faker: Optional[Faker] = None) -> Credentials:
    """Generate a random email/password pair."""
    faker = faker or _faker
    return Credentials(email=faker.unique.email(), password=faker.password(length=12))


def mask_token(token: str) -> str:
    """Show only the edges of a token in logs."""
    if len(token) <= 12:
        return "*" * len(token)
    return f"{token[:6]}...{token[-4:]}"


def obtain_access_token(client: PostsApiClient, credentials: Optional[Credentials] = None) -> str:
    """
    Register a generated user and return its access token.

    Errors are not handled here: a non-2xx answer raises ApiStatusError and
    a malformed answer raises pydantic's ValidationError.
    """
    credentials = credentials or generate_credentials()
    logger.info(f"Registering user {credentials.email}")
    auth = client.register(credentials)
    logger.info(f"Access token obtained: {mask_token(auth.accessToken)}")
    return auth.accessToken

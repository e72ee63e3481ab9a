"""Client module for the posts API."""
from src.client.api_client import ApiStatusError, PostsApiClient, bearer, response_body
from src.client.credentials import generate_credentials, obtain_access_token
from src.client.models import AuthResponse, Credentials, Post

__all__ = [
    "ApiStatusError",
    "PostsApiClient",
    "bearer",
    "response_body",
    "generate_credentials",
    "obtain_access_token",
    "AuthResponse",
    "Credentials",
    "Post",
]

"""Family Panel client: session handling and terminal sign-in."""

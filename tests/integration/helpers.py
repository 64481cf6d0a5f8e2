"""Helpers shared by the API tests."""

from itertools import count

_phones = count(1)


async def register(client, handle: str, **extra) -> dict:
    """Register through the API and return the token response."""
    payload = {
        "phone": f"+1444{next(_phones):07d}",
        "handle": handle,
        "display_name": handle.title(),
        **extra,
    }
    response = await client.post("/api/auth/register", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def bearer(account: dict) -> dict:
    return {"Authorization": f"Bearer {account['access_token']}"}

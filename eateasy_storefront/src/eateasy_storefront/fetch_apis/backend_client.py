import httpx, os

API_BASE = os.getenv("BACKEND_URL", "http://localhost:8001")


class BackendError(Exception):
    """Raised with a customer-facing message when the backend call fails."""

    def __init__(self, message: str, kind: str | None = None):
        super().__init__(message)
        self.message = message
        self.kind = kind


async def _request(method: str, path: str, **kwargs):
    try:
        async with httpx.AsyncClient(base_url=API_BASE, timeout=10.0) as client:
            resp = await client.request(method, path, **kwargs)
    except httpx.RequestError:
        raise BackendError("⚠️ Could not reach the restaurant. Please try again shortly.")

    if resp.status_code == 409:
        # Pickup no longer available: show the backend's message as-is
        body = resp.json()
        raise BackendError(f"⚠️ {body.get('message', 'Selected pickup is not available')}", kind=body.get("error"))
    if resp.status_code >= 500:
        raise BackendError("⚠️ Failed to place order. Please try again.")
    if resp.status_code >= 400:
        try:
            detail = resp.json().get("detail", resp.text)
        except ValueError:
            detail = f"HTTP {resp.status_code}"
        raise BackendError(f"⚠️ {detail}")
    return resp.json()


async def get_opening_hours(restaurant_id: str) -> list[dict]:
    return await _request("GET", f"/restaurants/{restaurant_id}/hours")

async def get_pickup_options(restaurant_id: str) -> dict:
    return await _request("GET", f"/restaurants/{restaurant_id}/pickup/options")

async def get_pickup_slots(restaurant_id: str, date: str) -> list[str]:
    result = await _request("GET", f"/restaurants/{restaurant_id}/pickup/slots/{date}")
    return result.get("slots", [])

async def place_order(restaurant_id: str, order: dict) -> dict:
    return await _request("POST", f"/restaurants/{restaurant_id}/orders", json=order)

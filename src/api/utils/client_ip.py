"""Client identity extraction for admission control and access logs."""

from starlette.types import Scope


def get_client_ip(scope: Scope, *, trust_proxy_headers: bool = False) -> str:
    """Extract the client IP of a request.

    Proxy headers are only honoured when the service runs behind a trusted
    proxy; otherwise any client could pick its own identity.

    Args:
        scope: The ASGI connection scope.
        trust_proxy_headers: Whether X-Forwarded-For / X-Real-IP are trusted.

    Returns:
        str: The client IP address, or "unknown".
    """
    if trust_proxy_headers:
        headers = dict(scope.get("headers") or [])

        # Try X-Forwarded-For first (standard proxy header)
        forwarded_for = headers.get(b"x-forwarded-for")
        if forwarded_for:
            # Take the first IP (original client)
            return forwarded_for.decode("latin-1").split(",")[0].strip()

        # Try X-Real-IP (nginx)
        real_ip = headers.get(b"x-real-ip")
        if real_ip:
            return real_ip.decode("latin-1").strip()

    # Fall back to direct connection
    client = scope.get("client")
    if client:
        return str(client[0])
    return "unknown"

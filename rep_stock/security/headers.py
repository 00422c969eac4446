from __future__ import annotations

from fastapi import FastAPI, Request
from starlette.responses import Response


SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'same-origin',
}

# API payloads carry per-user stock balances.
API_HEADERS = {
    'Cache-Control': 'no-store',
}


def install_security_headers(app: FastAPI) -> None:
    @app.middleware('http')
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.url.path.startswith('/api/'):
            for name, value in API_HEADERS.items():
                response.headers[name] = value
        return response

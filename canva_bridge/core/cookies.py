"""Cookie names and attributes for the sealed Canva cookies."""

from __future__ import annotations

from dataclasses import dataclass

from starlette.responses import Response

CREDENTIAL_COOKIE = "canva_tokens"
PKCE_COOKIE = "canva_pkce"


@dataclass(frozen=True)
class CookiePolicy:
    secure: bool = False
    credential_max_age: int = 60 * 60 * 24 * 30
    pkce_max_age: int = 60 * 30

    def set_credential(self, response: Response, sealed: str) -> None:
        self._set(response, CREDENTIAL_COOKIE, sealed, self.credential_max_age)

    def set_pkce(self, response: Response, sealed: str) -> None:
        self._set(response, PKCE_COOKIE, sealed, self.pkce_max_age)

    def clear_pkce(self, response: Response) -> None:
        self._set(response, PKCE_COOKIE, "", 0)

    def _set(self, response: Response, name: str, value: str, max_age: int) -> None:
        response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )


__all__ = ["CREDENTIAL_COOKIE", "CookiePolicy", "PKCE_COOKIE"]

"""Check that the bridge's ``.env`` loads and that its Canva wiring is sane.

``check`` validates the settings and prints warnings for a misconfigured
redirect URI, public origin or sealing secret. ``record`` and ``verify`` also
keep a SHA-256 baseline of the file so a rotated Canva client secret or
sealing secret does not go unnoticed::

    python -m scripts.check_env check --env-file /opt/canva-bridge/.env
    python -m scripts.check_env record --env-file /opt/canva-bridge/.env \
        --hash-file /opt/canva-bridge/.env.sha256
    python -m scripts.check_env verify --env-file /opt/canva-bridge/.env \
        --hash-file /opt/canva-bridge/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from urllib.parse import urlparse

from pydantic import ValidationError

from canva_bridge.core.config import AppSettings, _load_env_file
from canva_bridge.services.sealed_codec import derive_key

CALLBACK_PATH = "/api/canva/auth/callback"

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _validate_settings(env_file: Path) -> AppSettings:
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _settings_warnings(settings: AppSettings) -> list[str]:
    """Non-fatal problems worth flagging before the bridge goes live."""
    warnings: list[str] = []
    redirect_path = urlparse(str(settings.canva.redirect_uri)).path
    if redirect_path.rstrip("/") != CALLBACK_PATH:
        warnings.append(
            f"CANVA_REDIRECT_URI path is {redirect_path!r}; the callback route is {CALLBACK_PATH}."
        )
    if not settings.canva.resolved_public_base_url():
        warnings.append("No public base URL; redirects will be relative to the request origin.")
    secret = settings.security.token_secret
    if derive_key(secret) == hashlib.sha256(secret.strip().encode("utf-8")).digest():
        warnings.append(
            "CANVA_TOKEN_SECRET is not a 32 byte hex/base64 key; a SHA-256 derived key is used."
        )
    if settings.environment.lower() != "production":
        warnings.append(f"APP_ENV is {settings.environment!r}; cookies are not marked Secure.")
    return warnings


def _report_settings(settings: AppSettings) -> None:
    print(f"Canva client: {settings.canva.client_id}")
    print(f"Scopes: {settings.canva.scopes}")
    for warning in _settings_warnings(settings):
        print(f"warning: {warning}", file=sys.stderr)


def _checksum(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _record(env_file: Path, hash_file: Path) -> int:
    checksum = _checksum(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(f"No checksum baseline at {hash_file}; run 'record' first.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _checksum(env_file)
    if expected != actual:
        print(
            f"Environment checksum mismatch (expected {expected}, got {actual}).",
            file=sys.stderr,
        )
        return EXIT_CHECKSUM_ERROR
    print("Environment checksum OK.")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate Canva bridge settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    for command, needs_hash in (("check", False), ("record", True), ("verify", True)):
        subparser = subparsers.add_parser(command)
        subparser.add_argument("--env-file", default=".env", type=Path)
        if needs_hash:
            subparser.add_argument("--hash-file", required=True, type=Path)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(f"Environment file {env_file} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    try:
        settings = _validate_settings(env_file)
    except ValidationError as exc:
        print(f"Settings validation failed:\n{exc.json(indent=2)}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    _report_settings(settings)
    if args.command == "record":
        return _record(env_file, args.hash_file)
    if args.command == "verify":
        return _verify(env_file, args.hash_file)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())

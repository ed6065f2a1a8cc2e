"""Command line entry point."""

import argparse
import sys
from collections.abc import Sequence
from typing import Any

import yaml

from server_monitor.core.config import Settings, load_settings
from server_monitor.core.errors import ConfigError, TrustConfigError
from server_monitor.core.logging import get_logger, setup_logging
from server_monitor.core.security import generate_client_key, hash_password, mask_secret
from server_monitor.core.tls import certificate_fingerprint, ensure_server_certificate
from server_monitor.main import run
from server_monitor.services.credentials import CredentialStore

logger = get_logger(__name__)

_MASKED_AUTH_FIELDS = ("password_hash", "jwt_secret", "client_key", "client_key_hash")


def masked_record(settings: Settings) -> dict[str, Any]:
    """Configuration record with secret material masked."""
    record = settings.to_record()
    auth = record.get("auth", {})
    for name in _MASKED_AUTH_FIELDS:
        if auth.get(name):
            auth[name] = mask_secret(auth[name])
    return record


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="server-monitor",
        description="Authenticated HTTPS host monitoring agent",
    )
    parser.add_argument("--config", metavar="PATH", help="Path to the YAML configuration record")
    parser.add_argument(
        "--gen-cert",
        action="store_true",
        help="Generate a self-signed TLS certificate at the configured paths and exit",
    )
    parser.add_argument(
        "--hash",
        dest="hash_secret",
        metavar="SECRET",
        help="Print the bcrypt hash of SECRET and exit",
    )
    parser.add_argument(
        "--generate-client-key",
        action="store_true",
        help="Print a new pre-shared client key and its hash and exit",
    )
    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print the effective configuration with secrets masked and exit",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the server or one of the maintenance commands."""
    args = build_parser().parse_args(argv)

    if args.hash_secret is not None:
        try:
            print(hash_password(args.hash_secret))
        except ValueError as exc:
            print(f"hash error: {exc}", file=sys.stderr)
            return 1
        return 0

    if args.generate_client_key:
        key = generate_client_key()
        print(key)
        print("# Add to your configuration under auth:")
        print(f'  client_key_hash: "{hash_password(key)}"')
        return 0

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(f"failed to load config: {exc}", file=sys.stderr)
        return 1

    setup_logging(settings)

    try:
        if args.gen_cert:
            ensure_server_certificate(settings.tls.cert_path, settings.tls.key_path)
            print("Self-signed certificate generated at:")
            print(f"  cert: {settings.tls.cert_path}")
            print(f"  key: {settings.tls.key_path}")
            print(f"  sha256: {certificate_fingerprint(settings.tls.cert_path)}")
            return 0

        store = CredentialStore.from_settings(settings)

        if args.show_config:
            record = masked_record(store.settings)
            print(yaml.safe_dump(record, default_flow_style=False, sort_keys=False), end="")
            return 0

        run(store)
    except ConfigError as exc:
        logger.critical("Invalid configuration", extra={"error": str(exc)})
        return 1
    except TrustConfigError as exc:
        logger.critical("TLS setup failed", extra={"error": str(exc)})
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())

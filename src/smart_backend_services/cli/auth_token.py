"""
Command-line interface for SMART backend services tokens.

Prints an access token for a FHIR server, the signed client assertion only,
or the published public key material.
"""

import argparse
import json
import sys

from smart_backend_services.exceptions import SmartBackendError
from smart_backend_services.infrastructure.api_clients.smart_backend import (
    create_token_manager,
    get_token_with_retry,
)
from smart_backend_services.utils.config import load_config
from smart_backend_services.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Get a SMART backend services access token")

    parser.add_argument(
        "--config", "-c",
        help="YAML or JSON configuration file (environment variables take precedence)",
    )
    parser.add_argument(
        "--fhir-server",
        help="FHIR server base URL, overriding FHIRSERVER_URL",
    )
    parser.add_argument(
        "--token-endpoint",
        help="Token endpoint to use instead of the discovered one",
    )
    parser.add_argument(
        "--retries",
        help="Number of attempts when no token is available",
        type=int,
        default=1,
    )

    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--jwt-only",
        help="Only output the signed client assertion, don't exchange it",
        action="store_true",
    )
    action.add_argument(
        "--jwks",
        help="Output the published JWKS document",
        action="store_true",
    )
    action.add_argument(
        "--public-key",
        help="Output the published public key",
        action="store_true",
    )

    parser.add_argument(
        "--output", "-o",
        help="Output format (json or text)",
        choices=["json", "text"],
        default="text",
    )
    return parser


def _print_token(body: str, output: str) -> None:
    token_data = json.loads(body)
    if output == "json":
        print(json.dumps(token_data, indent=2))
        return

    print(f"Access Token: {token_data.get('access_token')}")
    print(f"Token Type: {token_data.get('token_type', 'Bearer')}")
    print(f"Expires In: {token_data.get('expires_in', 'Unknown')} seconds")

    for key, value in token_data.items():
        if key not in ["access_token", "token_type", "expires_in"]:
            print(f"{key}: {value}")


def main(argv=None) -> int:
    """Main entry point for the auth token CLI."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        # stdout carries the token output
        configure_logging(config.log_level, stream=sys.stderr)

        if args.fhir_server:
            config = config.copy(update={"fhir_server_url": args.fhir_server})

        manager = create_token_manager(config)

        if args.jwks:
            print(manager.get_jwks() or "")
            return 0

        if args.public_key:
            print(manager.get_public_key())
            return 0

        if args.jwt_only:
            assertion = manager.build_signed_assertion()
            if args.output == "json":
                print(json.dumps({"jwt": assertion}))
            else:
                print(assertion)
            return 0

        body = get_token_with_retry(
            manager,
            attempts=max(args.retries, 1),
            token_endpoint=args.token_endpoint,
        )
        if body is None:
            message = "No access token available; try again later"
            if args.output == "json":
                print(json.dumps({"error": message}))
            else:
                print(f"Error: {message}", file=sys.stderr)
            return 2

        _print_token(body, args.output)
        return 0

    except (SmartBackendError, OSError) as e:
        logger.error(f"Failed to get auth token: {e}")

        if args.output == "json":
            print(json.dumps({"error": str(e)}))
        else:
            print(f"Error: {e}", file=sys.stderr)

        return 1


if __name__ == "__main__":
    sys.exit(main())

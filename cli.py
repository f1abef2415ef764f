#!/usr/bin/env python3
"""Simple CLI for exercising the Vyra backend locally"""

import argparse
import asyncio
import json
import sys
from decimal import Decimal
from typing import List, Optional

import httpx
from eth_account import Account

from app.core.bridge.attestation import withdrawal_digest
from app.core.identity.signing import normalize_address, sign_digest
from app.core.paymaster.relay import parse_gas_used, sponsorship_digest
from app.core.recovery.errors import ServiceError

DEFAULT_BASE_URL = "http://127.0.0.1:8080"


def print_json(data) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def cli_keygen() -> None:
    """Print a fresh key pair (for validators or test wallets)"""
    account = Account.create()
    print(f"Address:     {account.address}")
    print(f"Private key: 0x{bytes(account.key).hex()}")


def cli_sign_withdrawal(amount: str, source_tx_hash: str, keys: List[str]) -> List[str]:
    """Sign a withdrawal attestation with each validator key"""
    payload_hash = withdrawal_digest(Decimal(amount), source_tx_hash)
    signatures = [sign_digest(key, payload_hash) for key in keys]
    for key, signature in zip(keys, signatures):
        print(f"{Account.from_key(key).address}: {signature}")
    return signatures


def cli_sign_sponsorship(user: str, gas_used: str, key: str) -> str:
    """Sign a sponsorship request with the user's (or a session) key"""
    user = normalize_address(user, field="user")
    gas = parse_gas_used(gas_used, max_gas=2**256 - 1)
    signature = sign_digest(key, sponsorship_digest(user, gas))
    print(signature)
    return signature


async def cli_status(base_url: str, transfer_id: Optional[str]) -> None:
    """Show service health, or the status of one bridge transfer"""
    async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as client:
        try:
            if transfer_id:
                response = await client.get(f"/bridge/status/{transfer_id}")
            else:
                response = await client.get("/health")
        except httpx.HTTPError as e:
            print(f"❌ Could not reach {base_url}: {e}")
            return

    if response.status_code >= 400:
        print(f"❌ {response.status_code}")
    print_json(response.json())


def cli_serve(host: Optional[str], port: Optional[int], reload: bool) -> None:
    import uvicorn

    from app.config import settings

    uvicorn.run(
        "app.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Vyra backend CLI")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", help="Bind host (default: HOST setting)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: PORT setting)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    subparsers.add_parser("keygen", help="Generate a key pair")

    withdraw_parser = subparsers.add_parser("sign-withdrawal", help="Sign a withdrawal attestation")
    withdraw_parser.add_argument("amount", help="Decimal ETH amount")
    withdraw_parser.add_argument("l2_tx_hash", help="L2 burn transaction hash")
    withdraw_parser.add_argument("--key", action="append", required=True, help="Validator private key (repeatable)")

    sponsor_parser = subparsers.add_parser("sign-sponsorship", help="Sign a gas sponsorship request")
    sponsor_parser.add_argument("user", help="User address")
    sponsor_parser.add_argument("gas_used", help="Gas amount")
    sponsor_parser.add_argument("--key", required=True, help="User or session private key")

    status_parser = subparsers.add_parser("status", help="Service health or bridge transfer status")
    status_parser.add_argument("transfer_id", nargs="?", help="Bridge transfer id")
    status_parser.add_argument("--url", default=DEFAULT_BASE_URL, help=f"API base URL (default: {DEFAULT_BASE_URL})")

    return parser


async def run_command(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    command = args.command.lower()

    try:
        if command == "keygen":
            cli_keygen()

        elif command == "sign-withdrawal":
            cli_sign_withdrawal(args.amount, args.l2_tx_hash, args.key)

        elif command == "sign-sponsorship":
            cli_sign_sponsorship(args.user, args.gas_used, args.key)

        elif command == "status":
            await cli_status(args.url, args.transfer_id)

        else:
            print(f"❌ Unknown command: {command}")
            parser.print_help()
            return 1
    except ServiceError as e:
        print(f"❌ {e.message}")
        return 1
    except (ValueError, ArithmeticError) as e:
        print(f"❌ {e}")
        return 1

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "serve":
        cli_serve(args.host, args.port, args.reload)
        return 0

    return asyncio.run(run_command(args, parser))


if __name__ == "__main__":
    sys.exit(main())

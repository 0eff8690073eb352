"""Command line front end: ``cloud-kms-eth``."""

import argparse
import logging
import os
import sys
from decimal import Decimal, InvalidOperation

import dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install
from web3 import Web3

from cloud_kms_eth.abi import encode_function_call
from cloud_kms_eth.accounts.gcp_kms_account import GCPKmsAccount
from cloud_kms_eth.config import ENV_WEB3_PROVIDER_URI, BaseConfig
from cloud_kms_eth.exceptions import HSMError
from cloud_kms_eth.key_import import import_private_key
from cloud_kms_eth.network import CHAIN_RPC_URLS, NetworkClient, explorer_url, resolve_rpc_url
from cloud_kms_eth.providers.google import GoogleCloudHSM
from cloud_kms_eth.transactions import decode_transaction
from cloud_kms_eth.types.ethereum_types import SignedTransaction, TransactionReceipt, TransactionRequest

console = Console()
logger = logging.getLogger("cloud_kms_eth")


def _setup_logging(verbose: bool) -> None:
    install()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(args) -> BaseConfig:
    config = BaseConfig.from_env()
    overrides = {}
    if getattr(args, "chain_id", None):
        overrides["chain_id"] = args.chain_id
    if getattr(args, "rpc_url", None):
        overrides["web3_provider_uri"] = args.rpc_url
    elif getattr(args, "chain_id", None) in CHAIN_RPC_URLS and not os.getenv(ENV_WEB3_PROVIDER_URI):
        overrides["web3_provider_uri"] = CHAIN_RPC_URLS[args.chain_id]
    return config.update(**overrides) if overrides else config


def _eth_to_wei(amount: str) -> int:
    try:
        return int(Web3.to_wei(Decimal(amount), "ether"))
    except (InvalidOperation, ValueError) as e:
        msg = f"Invalid ETH amount: {amount}"
        raise argparse.ArgumentTypeError(msg) from e


def _request_from_args(args, to: str, value: int, data: bytes = b"") -> TransactionRequest:
    return TransactionRequest(
        to=to,
        value=value,
        data=data,
        nonce=args.nonce,
        chain_id=args.chain_id,
        gas_limit=args.gas_limit,
        gas_price=args.gas_price,
        max_fee_per_gas=args.max_fee_per_gas,
        max_priority_fee_per_gas=args.max_priority_fee_per_gas,
    )


def _print_receipt(receipt: TransactionReceipt) -> None:
    status = "[green]success[/green]" if receipt.succeeded else "[red]failed[/red]"
    console.print(f"  Block: {receipt.block_number}")
    console.print(f"  Status: {status}")


def _print_signed(signed: SignedTransaction) -> None:
    decoded = decode_transaction(signed.raw_transaction)
    table = Table(title=f"Signed {signed.fee_model.value} transaction")
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    for field, value in decoded.items():
        table.add_row(field, "0x" + value.hex() if isinstance(value, bytes) else str(value))
    table.add_row("hash", "0x" + signed.hash.hex())
    console.print(table)
    console.print(f"[bold]Raw transaction:[/bold] {signed.to_hex()}")


def _sign_and_maybe_submit(account: GCPKmsAccount, request: TransactionRequest, args) -> int:
    signed = account.sign_transaction(request)
    _print_signed(signed)

    if not args.submit:
        return 0

    tx_hash = account.network.broadcast(signed.raw_transaction)
    console.print("[green]Transaction submitted[/green]")
    console.print(f"  Transaction hash: {tx_hash}")
    url = explorer_url(decode_transaction(signed.raw_transaction)["chainId"], tx_hash)
    if url:
        console.print(f"  Explorer: {url}")

    if args.wait:
        console.print("Waiting for confirmation...")
        receipt = account.network.wait_for_receipt(tx_hash)
        _print_receipt(receipt)
        return 0 if receipt.succeeded else 1
    return 0


def cmd_address(args) -> int:
    account = GCPKmsAccount(config=_load_config(args))
    console.print(f"[bold]Ethereum address:[/bold] {account.address}")
    return 0


def cmd_public_key(args) -> int:
    account = GCPKmsAccount(config=_load_config(args))
    console.print(f"[bold]Public key:[/bold] 0x04{account.public_key.hex()}")
    console.print(f"[bold]Ethereum address:[/bold] {account.address}")
    return 0


def cmd_message(args) -> int:
    account = GCPKmsAccount(config=_load_config(args))
    signature = account.sign_message(args.text)
    console.print(f"[bold]Signer:[/bold] {account.address}")
    console.print(f"[bold]Signature:[/bold] {signature.to_hex()}")
    return 0


def cmd_transfer(args) -> int:
    account = GCPKmsAccount(config=_load_config(args))
    request = _request_from_args(args, args.to, _eth_to_wei(args.amount))
    return _sign_and_maybe_submit(account, request, args)


def cmd_call(args) -> int:
    account = GCPKmsAccount(config=_load_config(args))
    data = encode_function_call(args.function, args.params)
    console.print(f"[bold]Call data:[/bold] 0x{data.hex()}")
    value = _eth_to_wei(args.value) if args.value else 0
    return _sign_and_maybe_submit(account, _request_from_args(args, args.contract, value, data), args)


def cmd_import(args) -> int:
    config = _load_config(args)
    hsm = GoogleCloudHSM(config)
    if args.create_key:
        hsm.create_signing_key(config.key_id, import_only=True)
    import_job = args.import_job
    if args.create_job:
        import_job = hsm.create_import_job(args.import_job)

    version = import_private_key(hsm, args.private_key, import_job)
    console.print("[green]Private key imported[/green]")
    console.print(f"  Key version: {version}")
    console.print("  Enable the version once its import completes, then delete the local copy of the key.")
    return 0


def cmd_submit(args) -> int:
    rpc_url = resolve_rpc_url(args.rpc_url or os.getenv(ENV_WEB3_PROVIDER_URI), args.chain_id)
    network = NetworkClient(rpc_url)
    tx_hash = network.broadcast(args.raw_tx)
    console.print("[green]Transaction submitted[/green]")
    console.print(f"  Transaction hash: {tx_hash}")
    url = explorer_url(args.chain_id, tx_hash)
    if url:
        console.print(f"  Explorer: {url}")

    if args.wait:
        receipt = network.wait_for_receipt(tx_hash)
        _print_receipt(receipt)
        return 0 if receipt.succeeded else 1
    return 0


def _add_network_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--chain-id", type=int, help="Chain ID (default: CHAIN_ID, else the node's)")
    parser.add_argument("-r", "--rpc-url", help="JSON-RPC endpoint (default: WEB3_PROVIDER_URI)")
    parser.add_argument("-w", "--wait", action="store_true", help="Wait for the receipt after submitting")


def _add_transaction_options(parser: argparse.ArgumentParser) -> None:
    _add_network_options(parser)
    parser.add_argument("-n", "--nonce", type=int, help="Nonce (fetched if omitted)")
    parser.add_argument("-g", "--gas-limit", type=int, help="Gas limit (estimated if omitted)")
    parser.add_argument("--gas-price", type=int, help="Gas price in wei (legacy)")
    parser.add_argument("--max-fee-per-gas", type=int, help="Max fee per gas in wei (EIP-1559)")
    parser.add_argument("--max-priority-fee-per-gas", type=int, help="Max priority fee per gas in wei (EIP-1559)")
    parser.add_argument("-s", "--submit", action="store_true", help="Broadcast after signing")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloud-kms-eth",
        description="Sign Ethereum transactions and messages with a Google Cloud KMS key",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s address
  %(prog)s message "Hello, Ethereum!"
  %(prog)s transfer 0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb 0.001 --submit --wait
  %(prog)s call 0xToken... "transfer(address,uint256)" 0xRecipient... 1000000000000000000
  %(prog)s call 0xContract... "deposit()" --value 0.1 --chain-id 1
  %(prog)s import 0x<private key> --import-job my-job --create-job
  %(prog)s submit 0x02f8... --chain-id 84532 --wait
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("address", help="Show the key's Ethereum address")
    subparsers.add_parser("public-key", help="Show the key's uncompressed public key")

    message_parser = subparsers.add_parser("message", help="Sign an EIP-191 personal message")
    message_parser.add_argument("text", help="Message text, or 0x-prefixed hex")

    transfer_parser = subparsers.add_parser("transfer", help="Sign an ETH transfer")
    transfer_parser.add_argument("to", help="Recipient address")
    transfer_parser.add_argument("amount", help="Amount in ETH, e.g. 0.01")
    _add_transaction_options(transfer_parser)

    call_parser = subparsers.add_parser("call", help="Sign a contract call")
    call_parser.add_argument("contract", help="Contract address")
    call_parser.add_argument("function", help='Function signature, e.g. "transfer(address,uint256)"')
    call_parser.add_argument("params", nargs="*", help="Arguments, converted according to the signature")
    call_parser.add_argument("--value", help="ETH sent with the call")
    _add_transaction_options(call_parser)

    import_parser = subparsers.add_parser("import", help="Import a private key into the configured crypto key")
    import_parser.add_argument("private_key", help="32-byte private key in hex")
    import_parser.add_argument("--import-job", required=True, help="Import job ID or resource name")
    import_parser.add_argument("--create-job", action="store_true", help="Create the import job first")
    import_parser.add_argument("--create-key", action="store_true", help="Create the import-only crypto key first")

    submit_parser = subparsers.add_parser("submit", help="Broadcast an already signed transaction")
    submit_parser.add_argument("raw_tx", help="0x-prefixed signed transaction")
    _add_network_options(submit_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    dotenv.load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    commands = {
        "address": cmd_address,
        "public-key": cmd_public_key,
        "message": cmd_message,
        "transfer": cmd_transfer,
        "call": cmd_call,
        "import": cmd_import,
        "submit": cmd_submit,
    }

    if args.command not in commands:
        parser.print_help()
        return 1

    try:
        return commands[args.command](args)
    except (HSMError, ValidationError, argparse.ArgumentTypeError) as e:
        console.print(f"[red]Error:[/red] {e}")
        logger.debug("Command failed", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

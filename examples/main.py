"""Sign a message and two transactions with a Cloud KMS key against a local Anvil node."""
from rich.console import Console
from rich.traceback import install

# Install rich traceback handler
install()

import dotenv
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from cloud_kms_eth import BaseConfig, GCPKmsAccount, TransactionRequest
from cloud_kms_eth.network import NetworkClient

# Initialize console for pretty printing
console = Console()

# Anvil account #0
FUNDER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
RECIPIENT = "0x4BB009C88B4718b06AbC236faAF1f06bBA3e610d"


def fund(web3: Web3, address: str) -> None:
    funder = web3.eth.account.from_key(FUNDER_KEY)
    tx = {
        "to": address,
        "value": web3.to_wei(0.01, "ether"),
        "gas": 21000,
        "gasPrice": web3.eth.gas_price,
        "nonce": web3.eth.get_transaction_count(funder.address),
        "chainId": web3.eth.chain_id,
    }
    signed = funder.sign_transaction(tx)
    receipt = web3.eth.wait_for_transaction_receipt(web3.eth.send_raw_transaction(signed.raw_transaction))
    console.print(f"[green]Funded account. TX hash: {receipt['transactionHash'].to_0x_hex()}[/green]")


def run_demo():
    dotenv.load_dotenv()

    config = BaseConfig.from_env()
    network = NetworkClient(config.web3_provider_uri)
    web3 = network.w3
    if not web3.is_connected():
        raise ConnectionError("Could not connect to Ethereum node")
    config.update(chain_id=network.get_chain_id())

    console.print("[bold blue]Creating HSM Account[/bold blue]")
    account = GCPKmsAccount(config=config, network=network)
    console.print(f"[green]Account address: {account.address}[/green]")

    fund(web3, account.address)
    console.print(f"[blue]Balance: {web3.from_wei(web3.eth.get_balance(account.address), 'ether')} ETH[/blue]")

    console.print("\n[bold blue]Testing Message Signing[/bold blue]")
    message = "Hello Ethereum!"
    signature = account.sign_message(message)
    recovered = Account.recover_message(encode_defunct(text=message), signature=signature.to_hex())
    console.print(f"Message signature: {signature.to_hex()}")
    console.print(f"Recovered signer: {recovered}")

    console.print("\n[bold blue]Testing Legacy Transaction[/bold blue]")
    legacy = account.sign_transaction(
        TransactionRequest(to=RECIPIENT, value=web3.to_wei(0.0001, "ether"), gas_price=web3.eth.gas_price)
    )
    console.print(f"Signed transaction: {legacy.to_hex()}")
    receipt = network.wait_for_receipt(network.broadcast(legacy.raw_transaction))
    console.print(f"[green]Transfer mined in block {receipt.block_number}: {receipt.transaction_hash}[/green]")

    console.print("\n[bold blue]Testing EIP-1559 Transaction[/bold blue]")
    receipt = account.send_transaction({"to": RECIPIENT, "value": web3.to_wei(0.0001, "ether")}, wait=True)
    console.print(f"[green]Transfer mined in block {receipt.block_number}: {receipt.transaction_hash}[/green]")
    console.print(f"[blue]Final balance: {web3.from_wei(web3.eth.get_balance(account.address), 'ether')} ETH[/blue]")


if __name__ == "__main__":
    run_demo()

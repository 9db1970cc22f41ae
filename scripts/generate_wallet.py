"""
Generate a local signing key for the wallet.

Creates keys/wallet.key holding a fresh hex private key and prints the
address. Set WALLET_PRIVATE_KEY from the file for development chains only.
Run once during project setup: python scripts/generate_wallet.py
"""

import os
from pathlib import Path

from eth_account import Account


def generate_wallet(output_dir: str = "keys") -> str:
    """Create a new account, write its key to disk and return the address."""
    keys_dir = Path(output_dir)
    keys_dir.mkdir(parents=True, exist_ok=True)

    account = Account.create()

    key_path = keys_dir / "wallet.key"
    key_path.write_text(account.key.hex() + "\n")
    key_path.chmod(0o600)

    print("Wallet key generated:")
    print(f"  Key file: {key_path.resolve()}")
    print(f"  Address:  {account.address}")
    return account.address


if __name__ == "__main__":
    # Run from project root
    project_root = Path(__file__).resolve().parent.parent
    os.chdir(project_root)
    generate_wallet()

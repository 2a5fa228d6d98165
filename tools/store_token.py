#!/usr/bin/env python3
"""
store_token.py - Encrypt an exam backend bearer token for the exam client.

Usage:
    python tools/store_token.py --out student.token --password
    python tools/store_token.py --out student.token --key-file CLIENT.key
    python tools/store_token.py --new-key CLIENT.key
"""

import argparse
import getpass
import sys
from pathlib import Path

from cryptography.fernet import Fernet

sys.path.insert(0, str(Path(__file__).parent.parent))
from examclient.credentials import save_token


def generate_key(output_file: str) -> None:
    """Generate a new Fernet key and save it to file."""
    key = Fernet.generate_key()
    Path(output_file).write_bytes(key)
    print(f"[OK] Success: Encryption key generated")
    print(f"  Output: {output_file}")
    print(f"\n[!] SECURITY: Store this key securely. Never commit to version control.")


def store_token(out_file: str, key_file: str | None, use_password: bool) -> None:
    token = getpass.getpass("Enter bearer token: ").strip()
    if not token:
        print("[ERROR] Token cannot be empty", file=sys.stderr)
        sys.exit(1)

    try:
        if use_password:
            password = getpass.getpass("Enter encryption password: ")
            password_confirm = getpass.getpass("Confirm password: ")
            if password != password_confirm:
                print("[ERROR] Passwords do not match", file=sys.stderr)
                sys.exit(1)
            path = save_token(out_file, token, password=password)
        else:
            key = Path(key_file).read_bytes().strip()
            path = save_token(out_file, token, key=key)
    except (OSError, ValueError) as e:
        print(f"[ERROR] Error encrypting token: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"\n[OK] Success: Token encrypted")
    print(f"  Output: {path}")
    print(f"  Method: {'Password-based' if use_password else 'Key file'}")


def main():
    parser = argparse.ArgumentParser(
        description="Encrypt a bearer token for the exam client.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tools/store_token.py --new-key CLIENT.key
  python tools/store_token.py --out student.token --key-file CLIENT.key
  python tools/store_token.py --out student.token --password
        """
    )
    parser.add_argument("--out", help="Output encrypted token file")
    parser.add_argument("--key-file", help="File containing the encryption key (mutually exclusive with --password)")
    parser.add_argument("--password", action="store_true", help="Use password-based encryption instead of key file")
    parser.add_argument("--new-key", metavar="KEY_FILE", help="Generate a new key file and exit")

    args = parser.parse_args()

    if args.new_key:
        generate_key(args.new_key)
        return

    if not args.out:
        print("[ERROR] --out is required", file=sys.stderr)
        sys.exit(1)

    if args.password and args.key_file:
        print("[ERROR] Cannot use both --password and --key-file", file=sys.stderr)
        sys.exit(1)

    if not args.password and not args.key_file:
        print("[ERROR] Must specify either --password or --key-file", file=sys.stderr)
        sys.exit(1)

    store_token(args.out, args.key_file, args.password)


if __name__ == "__main__":
    main()

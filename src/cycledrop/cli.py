"""cycledrop CLI — command-line interface for the reward distributor.

Usage:
    python -m cycledrop.cli build-tree --allocations alloc.csv --out claims.json
    python -m cycledrop.cli verify-proof --claims claims.json --address 0xAb...
    python -m cycledrop.cli status --program program.json
    python -m cycledrop.cli set-root --program program.json --cycle 0 --root 0x...
    python -m cycledrop.cli claim --program program.json --cycle 0 --claims claims.json --caller 0x...
    python -m cycledrop.cli has-claimed --program program.json --cycle 0 --address 0x...

Commands that touch the program read chain connectivity from the
environment (CYCLEDROP_RPC_URL, CYCLEDROP_PRIVATE_KEY, CYCLEDROP_CHAIN_ID),
loading a .env file first when one exists. set-root acts as the holder of
CYCLEDROP_ROOT_SETTER_KEY; only that key's address passes the
root-setter check.
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from cycledrop.config import ChainSettings, load_json, load_program_config, signer_address
from cycledrop.crypto.encoding import normalize_address
from cycledrop.crypto.merkle import MerkleTree, verify_proof
from cycledrop.errors import ConfigurationError, InvalidProofError
from cycledrop.models.program import ProgramConfig
from cycledrop.service import DistributorService
from cycledrop.token.gateway import TokenGateway

logger = logging.getLogger("cycledrop.cli")

DEFAULT_DATA = Path("data")


def _make_gateway(config: ProgramConfig, env_file: Optional[Path]) -> TokenGateway:
    from cycledrop.token.web3_gateway import Web3TokenGateway

    settings = ChainSettings.from_env(env_file)
    return Web3TokenGateway(
        rpc_url=settings.rpc_url,
        token_address=config.token,
        private_key=settings.private_key,
        chain_id=settings.chain_id,
    )


def _make_service(args: argparse.Namespace) -> DistributorService:
    """Create a DistributorService with durable persistence."""
    config = load_program_config(args.program)
    gateway = _make_gateway(config, args.env_file)
    return DistributorService.open(config, gateway, data_dir=args.data)


def load_allocations(path: Path) -> list[tuple[str, int]]:
    """Read allocations from CSV (address,amount header) or JSON {address: amount}."""
    if path.suffix.lower() == ".json":
        data = load_json(path)
        return [(address, int(amount)) for address, amount in data.items()]

    rows: list[tuple[str, int]] = []
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames or not {"address", "amount"} <= set(reader.fieldnames):
            raise ValueError("CSV needs header: address,amount")
        for row in reader:
            address = (row.get("address") or "").strip()
            amount = (row.get("amount") or "").strip()
            if address and amount:
                rows.append((address, int(amount)))
    return rows


def _claim_entry(claims_path: Path, address: str) -> tuple[str, int, list[str]]:
    document = load_json(claims_path)
    entry = document["claims"].get(normalize_address(address))
    if entry is None:
        raise KeyError(f"No allocation for {address} in {claims_path}")
    return document["root"], int(entry["amount"]), entry["proof"]


def cmd_build_tree(args: argparse.Namespace) -> int:
    tree = MerkleTree()
    for address, amount in load_allocations(args.allocations):
        tree.add_allocation(address, amount)
    document = tree.claims_document()
    args.out.write_text(json.dumps(document, indent=2), encoding="utf-8")
    print(f"Merkle root: {document['root']}")
    print(f"Recipients:  {tree.leaf_count}")
    print(f"Total:       {document['total']}")
    return 0


def cmd_verify_proof(args: argparse.Namespace) -> int:
    root, amount, proof = _claim_entry(args.claims, args.address)
    if args.root:
        root = args.root
    try:
        ok = verify_proof(root, args.address, amount, proof)
    except InvalidProofError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(f"{'VALID' if ok else 'INVALID'}: {args.address} amount {amount}")
    return 0 if ok else 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_set_root(args: argparse.Namespace) -> int:
    service = _make_service(args)
    root = args.root
    if root is None:
        root = load_json(args.claims)["root"]
    caller = signer_address(env_file=args.env_file)
    logger.info(f"Publishing cycle {args.cycle} root as {caller}")
    result = service.set_merkle_root(args.cycle, root, caller=caller)
    if result.success:
        print(f"Root published for cycle {result.data['cycle']}: {result.data['root']}")
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_claim(args: argparse.Namespace) -> int:
    service = _make_service(args)
    _, amount, proof = _claim_entry(args.claims, args.caller)
    result = service.claim(args.cycle, amount, proof, caller=args.caller)
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_has_claimed(args: argparse.Namespace) -> int:
    service = _make_service(args)
    claimed = service.has_claimed(args.cycle, args.address)
    print("claimed" if claimed else "not claimed")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cycledrop",
        description="cycledrop — cycle-based Merkle reward distributor CLI",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    def program_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--program", type=Path, required=True, help="Program JSON file")
        p.add_argument(
            "--data", type=Path, default=DEFAULT_DATA,
            help="State directory (default: data/)",
        )
        p.add_argument("--env-file", type=Path, help="Path to .env (default: search upward)")

    # build-tree
    p_build = sub.add_parser("build-tree", help="Build a claims document from allocations")
    p_build.add_argument("--allocations", type=Path, required=True, help="CSV or JSON allocations")
    p_build.add_argument("--out", type=Path, default=Path("claims.json"), help="Output JSON")

    # verify-proof
    p_verify = sub.add_parser("verify-proof", help="Verify one recipient's proof offline")
    p_verify.add_argument("--claims", type=Path, required=True, help="Claims JSON")
    p_verify.add_argument("--address", required=True, help="Recipient address")
    p_verify.add_argument("--root", help="Root to verify against (default: document root)")

    # status
    p_status = sub.add_parser("status", help="Show program status")
    program_args(p_status)

    # set-root
    p_root = sub.add_parser("set-root", help="Publish a cycle's Merkle root")
    program_args(p_root)
    p_root.add_argument("--cycle", type=int, required=True, help="Cycle index")
    p_root.add_argument("--root", help="Root digest (hex)")
    p_root.add_argument("--claims", type=Path, help="Take the root from a claims JSON")

    # claim
    p_claim = sub.add_parser("claim", help="Claim an allocation")
    program_args(p_claim)
    p_claim.add_argument("--cycle", type=int, required=True, help="Cycle index")
    p_claim.add_argument("--claims", type=Path, required=True, help="Claims JSON for the cycle")
    p_claim.add_argument("--caller", required=True, help="Claimant address")

    # has-claimed
    p_has = sub.add_parser("has-claimed", help="Check a recipient's claim status")
    program_args(p_has)
    p_has.add_argument("--cycle", type=int, required=True, help="Cycle index")
    p_has.add_argument("--address", required=True, help="Recipient address")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "set-root" and args.root is None and args.claims is None:
        print("Failed: set-root needs --root or --claims", file=sys.stderr)
        return 1

    commands = {
        "build-tree": cmd_build_tree,
        "verify-proof": cmd_verify_proof,
        "status": cmd_status,
        "set-root": cmd_set_root,
        "claim": cmd_claim,
        "has-claimed": cmd_has_claimed,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (ConfigurationError, KeyError, ValueError, OSError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

# cli.py
"""
Operator commands for the PDP side of the service.

    python cli.py serve
    python cli.py create-proof-set --record-keeper 0x...
    python cli.py proof-set-status --tx 0x...
    python cli.py add-roots --root rootCID:sub1+sub2 [--root ...]
    python cli.py export-public-key
    python cli.py reconcile-once
"""
import argparse
import asyncio
import sys
from typing import List, Optional
import httpx
from config.context import open_context
from config.settings import Settings, settings
from core.credentials import TokenIssuer, export_public_key
from core.pdp_client import PdpAuthorityClient, RootRegistration
from util.errors import ArkError
from util.logger import init_logger


def _http(cfg: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(cfg.HTTP_TIMEOUT_SECONDS, connect=10.0))


def _issuer(cfg: Settings) -> TokenIssuer:
    return TokenIssuer.from_key_file(
        cfg.PDP_SERVICE_NAME, cfg.PRIVATE_KEY_PATH, cfg.AUTHORITY_TOKEN_TTL_SECONDS
    )


async def _create_proof_set(cfg: Settings, args: argparse.Namespace) -> int:
    async with _http(cfg) as http:
        created = await PdpAuthorityClient(http, cfg.PDP_SERVICE_URL).create_proof_set(
            args.record_keeper, _issuer(cfg)(), extra_data=args.extra_data
        )
    print(f"Proof set creation initiated. Location: {created.location}")
    print(f"Transaction Hash: {created.tx_hash}")
    return 0


async def _proof_set_status(cfg: Settings, args: argparse.Namespace) -> int:
    async with _http(cfg) as http:
        st = await PdpAuthorityClient(http, cfg.PDP_SERVICE_URL).proof_set_status(
            args.tx, _issuer(cfg)()
        )
    print(f"tx={st.tx_hash} created={st.created} status={st.tx_status or '-'} ok={st.ok}")
    if st.proof_set_id is not None:
        print(f"ProofSet ID: {st.proof_set_id}")
    return 0


async def _add_roots(cfg: Settings, args: argparse.Namespace) -> int:
    try:
        roots = [RootRegistration.parse(r) for r in args.root]
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    proof_set_id = args.proof_set_id if args.proof_set_id is not None else cfg.PROOF_SET_ID
    async with _http(cfg) as http:
        await PdpAuthorityClient(http, cfg.PDP_SERVICE_URL).add_roots(
            proof_set_id, roots, _issuer(cfg)(), extra_data=args.extra_data
        )
    print(f"Added {len(roots)} root(s) to proof set {proof_set_id}.")
    return 0


async def _reconcile_once(cfg: Settings, args: argparse.Namespace) -> int:
    ctx = await open_context(cfg)
    try:
        report = await ctx.scheduler.tick()
    finally:
        await ctx.aclose()
    print(
        f"pending={report.pending} completed={len(report.completed)} "
        f"retried={len(report.retried)} failed={len(report.failed)} "
        f"errored={len(report.errored)}"
    )
    return 0


def _serve(cfg: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("main:app", host=args.host or cfg.HOST, port=args.port or cfg.PORT)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ark-vault", description="ark-vault service")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Run the HTTP service and the reconciliation loop")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)

    p = sub.add_parser("create-proof-set", help="Create a proof set on the PDP service")
    p.add_argument("--record-keeper", required=True)
    p.add_argument("--extra-data", default="")

    p = sub.add_parser("proof-set-status", help="Show proof set creation status")
    p.add_argument("--tx", required=True, help="creation transaction hash")

    p = sub.add_parser("add-roots", help="Add roots to a proof set")
    p.add_argument(
        "--root",
        action="append",
        required=True,
        help="rootCID:subrootCID1+subrootCID2 (repeatable)",
    )
    p.add_argument("--proof-set-id", type=int, default=None)
    p.add_argument("--extra-data", default="")

    sub.add_parser("export-public-key", help="Print the service public key (PEM)")
    sub.add_parser("reconcile-once", help="Run a single reconciliation tick")
    return parser


_ASYNC_COMMANDS = {
    "create-proof-set": _create_proof_set,
    "proof-set-status": _proof_set_status,
    "add-roots": _add_roots,
    "reconcile-once": _reconcile_once,
}


def main(argv: Optional[List[str]] = None, cfg: Settings = settings) -> int:
    args = build_parser().parse_args(argv)
    init_logger(cfg)

    if args.command == "serve":
        return _serve(cfg, args)
    if args.command == "export-public-key":
        try:
            print(export_public_key(cfg.PRIVATE_KEY_PATH), end="")
        except ArkError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        return 0

    try:
        return asyncio.run(_ASYNC_COMMANDS[args.command](cfg, args))
    except ArkError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
